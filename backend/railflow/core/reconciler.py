"""
Applies recommender plans (reroute / hold / resume / adjust_speed) to live trains.

Actions are applied in order against the state current at application time.
A failing action is logged and reported in its outcome; the rest of the plan
still runs.
"""
import logging
from typing import Callable, Dict, List, Optional, Sequence, Type, get_args

from railflow.core.config import settings
from railflow.core.graph_builder import PathGraph, TopologyManager
from railflow.core.models import Train, TrainStatus
from railflow.core.train_simulator import segment_heading
from railflow.core.twin_schema import (
    ActionOutcome,
    AdjustSpeedAction,
    HoldAction,
    RerouteAction,
    ResumeAction,
    TrainAction,
)

logger = logging.getLogger(__name__)

_HANDLERS: Dict[Type, str] = {
    RerouteAction: "_reroute",
    HoldAction: "_hold",
    ResumeAction: "_resume",
    AdjustSpeedAction: "_adjust_speed",
}


class DisruptionReconciler:
    def __init__(
        self,
        topology: TopologyManager,
        path_graph: PathGraph,
        start_threshold: Optional[float] = None,
    ):
        self.topology = topology
        self.path_graph = path_graph
        self.start_threshold = settings.REROUTE_START_THRESHOLD if start_threshold is None else start_threshold
        self._handlers: Dict[Type, Callable[[Train, object], ActionOutcome]] = {
            action_cls: getattr(self, name) for action_cls, name in _HANDLERS.items()
        }

    def apply(self, trains: Sequence[Train], actions: Sequence[TrainAction]) -> List[ActionOutcome]:
        by_id = {t.id: t for t in trains}
        outcomes: List[ActionOutcome] = []

        for action in actions:
            train = by_id.get(action.train_id)
            if train is None:
                logger.warning(f"Plan references unknown train {action.train_id}; skipping {action.action}")
                outcomes.append(ActionOutcome(
                    train_id=action.train_id, action=action.action, applied=False, detail="unknown train"
                ))
                continue
            if train.status == TrainStatus.FINISHED:
                logger.info(f"Train {train.id} has finished; ignoring {action.action}")
                outcomes.append(ActionOutcome(
                    train_id=train.id, action=action.action, applied=False, detail="train finished"
                ))
                continue

            handler = self._handlers[type(action)]
            try:
                outcome = handler(train, action)
            except Exception as e:
                logger.error(f"Failed to apply {action.action} to {train.id}: {e}", exc_info=True)
                outcome = ActionOutcome(train_id=train.id, action=action.action, applied=False, detail=str(e))
            if action.reason:
                logger.info(f"{train.id}: {action.action} - {action.reason}")
            outcomes.append(outcome)

        return outcomes

    # ------------------------------------------------------------------ handlers
    def _hold(self, train: Train, action: HoldAction) -> ActionOutcome:
        train.status = TrainStatus.STOPPED
        train.current_speed = 0.0
        return ActionOutcome(train_id=train.id, action=action.action, applied=True)

    def _resume(self, train: Train, action: ResumeAction) -> ActionOutcome:
        train.status = TrainStatus.MOVING
        train.current_speed = train.speed
        return ActionOutcome(train_id=train.id, action=action.action, applied=True)

    def _adjust_speed(self, train: Train, action: AdjustSpeedAction) -> ActionOutcome:
        if action.new_speed is None:
            return ActionOutcome(train_id=train.id, action=action.action, applied=False, detail="no new speed")
        train.current_speed = action.new_speed
        train.speed = action.new_speed
        return ActionOutcome(train_id=train.id, action=action.action, applied=True)

    def _reroute(self, train: Train, action: RerouteAction) -> ActionOutcome:
        if not action.new_path or len(action.new_path) < 2:
            return ActionOutcome(train_id=train.id, action=action.action, applied=False, detail="no new path")

        # The recommender's list is advisory; topology comes from our own graph.
        logger.debug(f"Recommended path for {train.id}: {action.new_path}")
        route = self.path_graph.find_shortest_path(train.origin_station_id, train.destination_station_id)
        if route is None:
            logger.error(f"Reroute failed for {train.id}, no new path found.")
            train.status = TrainStatus.STOPPED
            train.current_speed = 0.0
            return ActionOutcome(train_id=train.id, action=action.action, applied=False, detail="no path")

        current_id = self.effective_station(train, route.path)
        index = route.path.index(current_id) if current_id in route.path else -1

        if index != -1 and index < len(route.path) - 1:
            next_id = route.path[index + 1]
            segment = self.topology.find_segment(current_id, next_id)
            if segment is not None:
                train.path = route.path
                train.total_distance = route.distance
                train.status = TrainStatus.MOVING
                train.current_speed = train.speed
                train.current_segment = segment
                train.segment_progress = 0.0
                return ActionOutcome(
                    train_id=train.id, action=action.action, applied=True,
                    detail=f"continuing from {current_id} via {next_id}",
                )
            logger.warning(f"No segment found for reroute: {current_id} -> {next_id}")
        else:
            logger.warning(f"Current station {current_id} not found or is last stop in new path for train {train.id}")

        train.status = TrainStatus.STOPPED
        train.current_speed = 0.0
        train.path = route.path
        train.total_distance = route.distance
        return ActionOutcome(
            train_id=train.id, action=action.action, applied=False,
            detail=f"path updated but no way forward from {current_id}",
        )

    def effective_station(self, train: Train, new_path: List[str]) -> str:
        """Station a rerouted train continues from"""
        heading = segment_heading(train)
        if heading is not None:
            departed, approaching = heading
            return departed if train.segment_progress < self.start_threshold else approaching
        for station_id in train.path:
            if station_id in new_path:
                return station_id
        return new_path[0]


# Every action kind needs a handler.
_missing = set(get_args(get_args(TrainAction)[0])) - set(_HANDLERS)
if _missing:
    raise RuntimeError(f"No reconciler handler for {_missing}")
