"""
Per-tick train motion along segment geometry.

Every inconsistency (segment/path mismatch, missing next segment, exhausted
path) degrades the train to `stopped` or `finished`; `step` never raises for
a single train's fault.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from railflow.core.clock import SimulationClock
from railflow.core.config import settings
from railflow.core.geometry import point_on_curve
from railflow.core.graph_builder import PathGraph, TopologyManager
from railflow.core.models import Point, Train, TrainProfile, TrainStatus

logger = logging.getLogger(__name__)


def parse_departure(departure_time: str, on_day: datetime) -> Optional[datetime]:
    """Departure "HH:MM" on the calendar day of `on_day`"""
    try:
        hh, mm = departure_time.split(":")
        return on_day.replace(hour=int(hh), minute=int(mm), second=0, microsecond=0)
    except (ValueError, AttributeError):
        return None


def format_time(dt_val: datetime) -> str:
    return dt_val.strftime("%H:%M")


def calculate_eta(train: Train, departure: datetime) -> str:
    """Estimated arrival "HH:MM", or "N/A" when it cannot be estimated"""
    if (
        train.status in (TrainStatus.SCHEDULED, TrainStatus.FINISHED)
        or train.total_distance == 0
        or train.speed == 0
    ):
        return "N/A"
    total_km = train.total_distance * settings.DISTANCE_UNIT_TO_KM
    travel_hours = total_km / train.speed
    return format_time(departure + timedelta(hours=travel_hours))


def initialize_trains(
    profiles: Iterable[TrainProfile],
    topology: TopologyManager,
    path_graph: PathGraph,
) -> List[Train]:
    """Build the train collection from static profiles and fresh shortest paths"""
    trains: List[Train] = []
    for profile in profiles:
        origin = topology.station(profile.origin_station_id)
        if origin is None:
            logger.error(f"Origin station {profile.origin_station_id} not found for train {profile.id}")
            trains.append(
                Train.from_profile(
                    profile,
                    path=[profile.origin_station_id],
                    status=TrainStatus.STOPPED,
                    position=Point(0.0, 0.0),
                )
            )
            continue

        route = path_graph.find_shortest_path(profile.origin_station_id, profile.destination_station_id)
        if route is None or len(route.path) < 2:
            logger.error(
                f"No path found for train {profile.id} from {profile.origin_station_id} "
                f"to {profile.destination_station_id}"
            )
            trains.append(
                Train.from_profile(
                    profile,
                    path=[profile.origin_station_id],
                    total_distance=0.0,
                    status=TrainStatus.STOPPED,
                    position=origin.position,
                )
            )
            continue

        trains.append(
            Train.from_profile(
                profile,
                path=route.path,
                total_distance=route.distance,
                status=TrainStatus.SCHEDULED,
                position=origin.position,
                current_segment=topology.find_segment(route.path[0], route.path[1]),
                segment_progress=0.0,
            )
        )

    logger.info(f"Initialized {len(trains)} trains")
    return trains


def set_train_status(train: Train, status: TrainStatus) -> Train:
    """Manual override, bypassing the reconciler"""
    train.status = status
    train.current_speed = train.speed if status == TrainStatus.MOVING else 0.0
    return train


def segment_direction(train: Train) -> Optional[bool]:
    """False when the segment runs along the path, True when against it, None on mismatch"""
    segment = train.current_segment
    path = train.path
    start, end = segment.start_station_id, segment.end_station_id

    if start in path:
        i = path.index(start)
        if i + 1 < len(path) and path[i + 1] == end:
            return False
    if end in path:
        j = path.index(end)
        if j + 1 < len(path) and path[j + 1] == start:
            return True
    return None


def segment_heading(train: Train) -> Optional[Tuple[str, str]]:
    """(departed, approaching) stations of the current segment, following the path"""
    if train.current_segment is None:
        return None
    reversed_ = segment_direction(train)
    if reversed_ is None:
        return None
    segment = train.current_segment
    if reversed_:
        return segment.end_station_id, segment.start_station_id
    return segment.start_station_id, segment.end_station_id


class TrainMotionSimulator:
    """Advances trains one tick at a time"""

    def __init__(self, topology: TopologyManager, tension: Optional[float] = None):
        self.topology = topology
        self.tension = settings.SPLINE_TENSION if tension is None else tension
        self.base_rate = settings.BASE_PROGRESS_RATE
        self.reference_speed = settings.REFERENCE_SPEED

    def step_all(self, trains: Sequence[Train], clock: SimulationClock) -> List[Train]:
        for train in trains:
            self.step(train, clock)
        return list(trains)

    def step(self, train: Train, clock: SimulationClock) -> Train:
        if train.status == TrainStatus.SCHEDULED:
            self._maybe_depart(train, clock.time)

        if train.status != TrainStatus.MOVING or clock.is_paused or train.current_segment is None:
            return train

        reversed_ = segment_direction(train)
        if reversed_ is None:
            logger.warning(f"Train {train.id} is on a segment not matching its path. Stopping.")
            train.status = TrainStatus.STOPPED
            train.current_speed = 0.0
            return train

        delta = self.base_rate * (train.current_speed / self.reference_speed) * clock.speed_multiplier
        progress = train.segment_progress + delta

        if progress < 1:
            train.segment_progress = max(progress, 0.0)
            train.position = point_on_curve(
                train.current_segment.points, train.segment_progress, reversed_, self.tension
            )
            return train

        return self._cross_boundary(train, progress, reversed_)

    # ------------------------------------------------------------------ helpers
    @staticmethod
    def _maybe_depart(train: Train, now: datetime) -> None:
        departure = parse_departure(train.departure_time, now)
        if departure is None:
            logger.warning(f"Train {train.id} has invalid departure time {train.departure_time!r}")
            return
        if now >= departure:
            train.status = TrainStatus.MOVING
            train.current_speed = train.speed
            logger.info(f"Train {train.id} departed {train.origin_station_id} at {format_time(now)}")

    def _finish(self, train: Train) -> Train:
        destination = self.topology.station(train.destination_station_id)
        train.status = TrainStatus.FINISHED
        train.current_speed = 0.0
        train.position = destination.position if destination else train.position
        train.segment_progress = 1.0
        train.current_segment = None
        logger.info(f"Train {train.id} arrived at {train.destination_station_id}")
        return train

    def _cross_boundary(self, train: Train, progress: float, reversed_: bool) -> Train:
        segment = train.current_segment
        boundary_id = segment.start_station_id if reversed_ else segment.end_station_id

        if boundary_id == train.destination_station_id:
            return self._finish(train)

        if boundary_id not in train.path or train.path.index(boundary_id) + 1 >= len(train.path):
            logger.error(f"Train {train.id} path logic error at {boundary_id}. Finishing.")
            return self._finish(train)

        next_id = train.path[train.path.index(boundary_id) + 1]
        next_segment = self.topology.find_segment(boundary_id, next_id)
        if next_segment is None:
            boundary = self.topology.station(boundary_id)
            logger.warning(f"Train {train.id} path broken. Stopping at {boundary_id}.")
            train.status = TrainStatus.STOPPED
            train.current_speed = 0.0
            train.position = boundary.position if boundary else train.position
            train.segment_progress = 1.0
            return train

        train.current_segment = next_segment
        # Carry the overflow; a single tick never spans a whole segment
        train.segment_progress = min(progress - 1.0, 1.0)
        next_reversed = next_segment.start_station_id != boundary_id
        train.position = point_on_curve(
            next_segment.points, train.segment_progress, next_reversed, self.tension
        )
        return train
