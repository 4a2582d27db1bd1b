from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query

from railflow.core.config import settings
from railflow.core.geometry import curve_path_commands
from railflow.core.realtime_manager import get_simulation_engine
from railflow.services.network_loader import station_to_dict, track_to_dict

router = APIRouter(prefix=f"{settings.API_PREFIX}/network", tags=["network"])


@router.get("")
async def get_network() -> Dict[str, Any]:
	"""Stations, tracks and derived segments with their drawable curves."""
	engine = get_simulation_engine()
	topology = engine.topology
	segments = []
	for segment in topology.all_segments:
		payload = segment.to_dict()
		payload["curve"] = curve_path_commands(segment.points, settings.SPLINE_TENSION)
		segments.append(payload)
	return {
		"stations": [station_to_dict(s) for s in topology.stations.values()],
		"tracks": [track_to_dict(t) for t in topology.tracks],
		"segments": segments,
		"availableSegments": [s.id for s in topology.available_segments],
		"stats": topology.get_network_stats(),
	}


@router.get("/graph")
async def get_graph() -> Dict[str, Any]:
	"""Adjacency of the graph built from the currently available segments."""
	engine = get_simulation_engine()
	return {"adjacency": engine.path_graph.adjacency()}


@router.get("/path")
async def shortest_path(start: str = Query(...), end: str = Query(...)) -> Dict[str, Any]:
	engine = get_simulation_engine()
	route = engine.path_graph.find_shortest_path(start, end)
	if route is None:
		raise HTTPException(status_code=404, detail=f"No path found from {start} to {end}")
	return {"path": route.path, "distance": route.distance}


@router.delete("/segments/{segment_id}")
async def remove_segment(segment_id: str) -> Dict[str, Any]:
	"""Close a segment (simulated track closure)."""
	engine = get_simulation_engine()
	async with engine.lock:
		try:
			remaining = engine.remove_segment(segment_id)
		except KeyError:
			raise HTTPException(status_code=404, detail=f"Unknown segment {segment_id}")
	return {"removed": segment_id, "availableSegments": [s.id for s in remaining]}


@router.post("/segments/{segment_id}/restore")
async def restore_segment(segment_id: str) -> Dict[str, Any]:
	engine = get_simulation_engine()
	async with engine.lock:
		try:
			available = engine.restore_segment(segment_id)
		except KeyError:
			raise HTTPException(status_code=404, detail=f"Unknown segment {segment_id}")
	return {"restored": segment_id, "availableSegments": [s.id for s in available]}
