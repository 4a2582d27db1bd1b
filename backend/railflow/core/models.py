"""
Simulation-domain records for the rail network twin.

Stations, tracks and segments are immutable once loaded; trains are mutated in
place by the motion simulator and the disruption reconciler.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def key(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Station:
    id: str
    name: str
    position: Point


@dataclass(frozen=True)
class Track:
    """A polyline through one or more stations. Double track = two records."""
    id: str
    points: Tuple[Point, ...]


@dataclass(frozen=True)
class Segment:
    """Atomic traversable piece of a track between two adjacent stations."""
    id: str
    track_id: str
    points: Tuple[Point, ...]
    start_station_id: str
    end_station_id: str

    def connects(self, a: str, b: str) -> bool:
        return (self.start_station_id == a and self.end_station_id == b) or (
            self.start_station_id == b and self.end_station_id == a
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "trackId": self.track_id,
            "points": [p.to_dict() for p in self.points],
            "startStationId": self.start_station_id,
            "endStationId": self.end_station_id,
        }


class TrainStatus(str, Enum):
    SCHEDULED = "scheduled"
    MOVING = "moving"
    STOPPED = "stopped"
    FINISHED = "finished"


@dataclass(frozen=True)
class TrainProfile:
    id: str
    speed: float
    platform: int
    departure_time: str  # "HH:MM"
    origin_station_id: str
    destination_station_id: str


@dataclass
class Train:
    id: str
    speed: float  # target speed (km/h)
    platform: int
    departure_time: str
    origin_station_id: str
    destination_station_id: str
    status: TrainStatus = TrainStatus.SCHEDULED
    current_speed: float = 0.0
    position: Point = field(default_factory=lambda: Point(0.0, 0.0))
    path: List[str] = field(default_factory=list)
    total_distance: float = 0.0
    current_segment: Optional[Segment] = None
    segment_progress: float = 0.0

    @classmethod
    def from_profile(cls, profile: TrainProfile, **state: Any) -> "Train":
        return cls(
            id=profile.id,
            speed=profile.speed,
            platform=profile.platform,
            departure_time=profile.departure_time,
            origin_station_id=profile.origin_station_id,
            destination_station_id=profile.destination_station_id,
            **state,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "speed": self.speed,
            "currentSpeed": self.current_speed,
            "platform": self.platform,
            "path": list(self.path),
            "originStationId": self.origin_station_id,
            "destinationStationId": self.destination_station_id,
            "position": self.position.to_dict(),
            "departureTime": self.departure_time,
            "currentSegment": self.current_segment.id if self.current_segment else None,
            "segmentProgress": self.segment_progress,
            "totalDistance": self.total_distance,
        }
