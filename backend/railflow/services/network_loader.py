"""
Network loader for stations, track polylines and train profiles.
Loads the bundled demo network from CSV/JSON files and provides structured access.
"""
import json
import pandas as pd
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

from railflow.core.config import settings
from railflow.core.models import Point, Station, Track, TrainProfile

logger = logging.getLogger(__name__)

# Base data directory
BASE_DIR = Path(__file__).resolve().parents[1]  # backend/railflow/services -> backend/railflow
DATA_DIR = BASE_DIR / "data"


@dataclass
class NetworkData:
	stations: List[Station]
	tracks: List[Track]
	profiles: List[TrainProfile]


def _data_dir(data_path: Optional[Path] = None) -> Path:
	if data_path is not None:
		return Path(data_path)
	if settings.NETWORK_DATA_DIR:
		return Path(settings.NETWORK_DATA_DIR)
	return DATA_DIR


def load_stations(data_path: Optional[Path] = None) -> List[Station]:
	"""
	Load all stations from CSV.

	Returns:
		List of stations in file order
	"""
	stations_file = _data_dir(data_path) / "stations.csv"
	if not stations_file.exists():
		logger.warning(f"Stations file not found: {stations_file}")
		return []

	df = pd.read_csv(stations_file, dtype={"id": str, "name": str})

	required_cols = ["id", "name", "x", "y"]
	for col in required_cols:
		if col not in df.columns:
			logger.error(f"Missing required column: {col}")
			return []

	stations = []
	seen = set()
	for _, row in df.iterrows():
		station_id = str(row["id"]).strip()
		if station_id in seen:
			logger.warning(f"Duplicate station id {station_id}; keeping the first")
			continue
		seen.add(station_id)
		stations.append(Station(
			id=station_id,
			name=str(row["name"]),
			position=Point(float(row["x"]), float(row["y"])),
		))

	logger.info(f"Loaded {len(stations)} stations")
	return stations


def _track_points(raw: Dict[str, Any], station_map: Dict[str, Station]) -> Optional[List[Point]]:
	if "points" in raw:
		return [Point(float(x), float(y)) for x, y in raw["points"]]

	points = []
	for code in raw.get("stations", []):
		station = station_map.get(code)
		if station is None:
			logger.warning(f"Skipping track {raw.get('id')}: station {code} not found")
			return None
		points.append(station.position)

	dx, dy = raw.get("offset", [0, 0])
	return [Point(p.x + dx, p.y + dy) for p in points]


def load_tracks(stations: List[Station], data_path: Optional[Path] = None) -> List[Track]:
	"""
	Load track polylines from JSON.

	Entries either list station codes (with an optional [dx, dy] offset for the
	parallel line of a double track) or raw [x, y] points.
	"""
	tracks_file = _data_dir(data_path) / "tracks.json"
	if not tracks_file.exists():
		logger.warning(f"Tracks file not found: {tracks_file}")
		return []

	with tracks_file.open("r", encoding="utf-8") as fh:
		raw_tracks = json.load(fh)

	station_map = {s.id: s for s in stations}
	tracks = []
	for raw in raw_tracks:
		track_id = raw.get("id")
		if not track_id:
			logger.warning("Skipping track without id")
			continue
		points = _track_points(raw, station_map)
		if points is None or len(points) < 2:
			continue
		tracks.append(Track(id=str(track_id), points=tuple(points)))

	logger.info(f"Loaded {len(tracks)} tracks")
	return tracks


def load_train_profiles(data_path: Optional[Path] = None) -> List[TrainProfile]:
	"""Load static train profiles from CSV"""
	trains_file = _data_dir(data_path) / "trains.csv"
	if not trains_file.exists():
		logger.warning(f"Trains file not found: {trains_file}")
		return []

	df = pd.read_csv(trains_file, dtype={
		"id": str, "departure_time": str, "origin_station_id": str, "destination_station_id": str,
	})

	profiles = []
	for _, row in df.iterrows():
		profiles.append(TrainProfile(
			id=str(row["id"]),
			speed=float(row["speed"]),
			platform=int(row.get("platform", 0)),
			departure_time=str(row["departure_time"]).strip(),
			origin_station_id=str(row["origin_station_id"]).strip(),
			destination_station_id=str(row["destination_station_id"]).strip(),
		))

	logger.info(f"Loaded {len(profiles)} train profiles")
	return profiles


def load_network(data_path: Optional[Path] = None) -> NetworkData:
	stations = load_stations(data_path)
	return NetworkData(
		stations=stations,
		tracks=load_tracks(stations, data_path),
		profiles=load_train_profiles(data_path),
	)


def station_to_dict(station: Station) -> Dict[str, Any]:
	return {"id": station.id, "name": station.name, "position": station.position.to_dict()}


def track_to_dict(track: Track) -> Dict[str, Any]:
	return {"id": track.id, "points": [p.to_dict() for p in track.points]}
