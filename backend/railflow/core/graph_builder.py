"""
Graph Builder for the rail network twin.
Derives station-to-station segments from track polylines, tracks which of
them are currently available, and answers shortest-path queries over a
NetworkX graph rebuilt from the live segment set.
"""
import networkx as nx
from typing import Dict, Any, List, Optional, Iterable, Sequence, Tuple
import logging
from dataclasses import dataclass

from railflow.core.geometry import polyline_length
from railflow.core.models import Segment, Station, Track

logger = logging.getLogger(__name__)


@dataclass
class ShortestPath:
    """Result of a shortest-path query"""
    path: List[str]
    distance: float


def segment_id_for(track_id: str, start_station_id: str, end_station_id: str) -> str:
    return f"{track_id}-{start_station_id}-{end_station_id}"


def derive_segments(stations: Iterable[Station], tracks: Iterable[Track]) -> List[Segment]:
    """
    Split every track into segments between consecutive station waypoints.

    A waypoint is a track point whose coordinates exactly equal a station's
    position. The result depends only on the inputs, in track order then
    waypoint order, so re-running it yields the same segment list.
    """
    station_by_point: Dict[Tuple[float, float], str] = {}
    for station in stations:
        station_by_point.setdefault(station.position.key(), station.id)

    segments: List[Segment] = []
    seen: set = set()

    for track in tracks:
        waypoints = [
            (index, station_by_point[point.key()])
            for index, point in enumerate(track.points)
            if point.key() in station_by_point
        ]

        for (start_index, start_id), (end_index, end_id) in zip(waypoints, waypoints[1:]):
            pair_key = (track.id, frozenset((start_id, end_id)))
            if pair_key in seen:
                continue
            points = tuple(track.points[start_index:end_index + 1])
            if len(points) < 2:
                continue
            segments.append(
                Segment(
                    id=segment_id_for(track.id, start_id, end_id),
                    track_id=track.id,
                    points=points,
                    start_station_id=start_id,
                    end_station_id=end_id,
                )
            )
            seen.add(pair_key)

    logger.debug(f"Derived {len(segments)} segments from tracks")
    return segments


class TopologyManager:
    """Owns the static network and the mutable set of available segments"""

    def __init__(self, stations: Sequence[Station], tracks: Sequence[Track]):
        self.stations: Dict[str, Station] = {s.id: s for s in stations}
        self.tracks: List[Track] = list(tracks)
        self.all_segments: List[Segment] = []
        self._available: List[Segment] = []
        self.reset()

    @property
    def available_segments(self) -> List[Segment]:
        return self._available

    def reset(self) -> List[Segment]:
        """Re-derive segments from the static tracks; everything becomes available"""
        self.all_segments = derive_segments(self.stations.values(), self.tracks)
        self._available = list(self.all_segments)
        logger.info(f"Topology reset: {len(self.stations)} stations, {len(self.all_segments)} segments")
        return self._available

    def update_available_segments(self, segments: Sequence[Segment]) -> None:
        self._available = list(segments)

    def get_segment(self, segment_id: str) -> Optional[Segment]:
        """Look up a derived segment by id, available or not"""
        for segment in self.all_segments:
            if segment.id == segment_id:
                return segment
        return None

    def is_available(self, segment_id: str) -> bool:
        return any(s.id == segment_id for s in self._available)

    def remove_segment(self, segment_id: str) -> List[Segment]:
        """Close a segment and return the remaining available ones"""
        remaining = [s for s in self._available if s.id != segment_id]
        if len(remaining) == len(self._available):
            logger.warning(f"remove_segment: segment {segment_id} is not available")
        else:
            logger.info(f"Segment {segment_id} removed; {len(remaining)} segments remain")
        self.update_available_segments(remaining)
        return remaining

    def restore_segment(self, segment_id: str) -> List[Segment]:
        """Reopen a previously removed segment, keeping derivation order"""
        if self.get_segment(segment_id) is None:
            logger.warning(f"restore_segment: unknown segment {segment_id}")
            return self._available
        wanted = {s.id for s in self._available} | {segment_id}
        self.update_available_segments([s for s in self.all_segments if s.id in wanted])
        logger.info(f"Segment {segment_id} restored")
        return self._available

    def find_segment(self, a: str, b: str) -> Optional[Segment]:
        """First available segment joining two stations, either orientation"""
        for segment in self._available:
            if segment.connects(a, b):
                return segment
        return None

    def station(self, station_id: str) -> Optional[Station]:
        return self.stations.get(station_id)

    def get_network_stats(self) -> Dict[str, Any]:
        return {
            "stations": len(self.stations),
            "tracks": len(self.tracks),
            "segments": len(self.all_segments),
            "available_segments": len(self._available),
        }


class PathGraph:
    """Shortest-path engine over the currently available segments"""

    def __init__(self, topology: TopologyManager):
        self.topology = topology

    def build_graph(self) -> nx.Graph:
        """Build a weighted undirected graph from the live segment set"""
        graph = nx.Graph()
        # Every station is a node, even when all its segments are closed
        graph.add_nodes_from(self.topology.stations.keys())

        for segment in self.topology.available_segments:
            a, b = segment.start_station_id, segment.end_station_id
            if a not in graph or b not in graph:
                logger.warning(f"Skipping segment {segment.id}: station not found (from={a}, to={b})")
                continue
            weight = polyline_length(segment.points)
            existing = graph.get_edge_data(a, b)
            # Parallel segments between the same pair: keep the lighter one
            if existing is not None and existing["weight"] <= weight:
                continue
            graph.add_edge(a, b, weight=weight, segment_id=segment.id)

        return graph

    def find_shortest_path(self, start_station_id: str, end_station_id: str) -> Optional[ShortestPath]:
        """
        Dijkstra shortest path between two stations.

        Returns None when either station is unknown or the destination is
        unreachable. Equal-cost ties resolve in NetworkX heap order, i.e. the
        insertion order of stations and segments.
        """
        graph = self.build_graph()
        if start_station_id not in graph or end_station_id not in graph:
            logger.debug(f"No path: unknown station ({start_station_id} -> {end_station_id})")
            return None

        try:
            distance, path = nx.single_source_dijkstra(
                graph, start_station_id, target=end_station_id, weight="weight"
            )
        except nx.NetworkXNoPath:
            logger.debug(f"No path found from {start_station_id} to {end_station_id}")
            return None

        if not path or path[0] != start_station_id:
            return None
        return ShortestPath(path=list(path), distance=float(distance))

    def adjacency(self) -> Dict[str, Dict[str, float]]:
        graph = self.build_graph()
        return {
            node: {nbr: data["weight"] for nbr, data in graph[node].items()}
            for node in graph.nodes
        }
