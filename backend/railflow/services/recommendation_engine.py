"""Basic rule-based recommendation engine.

This is intentionally lightweight and deterministic. It answers the same
requests as the external recommender when none is configured:
- track closure: reroute every active train whose remaining path crosses a
  closed edge (hold it when no route is left)
- delay: hold the delayed train and any moving train about to enter the
  segment it occupies
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from railflow.core.config import settings
from railflow.core.graph_builder import PathGraph, TopologyManager
from railflow.core.twin_schema import (
    HoldAction,
    RecommendationPlan,
    RecommendationRequest,
    RecommendationResult,
    RerouteAction,
)
from railflow.services.recommendation_client import get_recommendation_client

logger = logging.getLogger(__name__)

_ACTIVE = {"scheduled", "moving", "stopped"}


def _segment_pair(topology: TopologyManager, train: Dict[str, Any]) -> Optional[frozenset]:
    segment = topology.get_segment(train.get("currentSegment") or "")
    if segment is None:
        return None
    return frozenset((segment.start_station_id, segment.end_station_id))


def remaining_edges(topology: TopologyManager, train: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Station pairs still ahead of a train, starting with the one it is on"""
    path: List[str] = train.get("path") or []
    start = 0
    segment = topology.get_segment(train.get("currentSegment") or "")
    if segment is not None:
        for station_id in (segment.start_station_id, segment.end_station_id):
            if station_id in path:
                idx = path.index(station_id)
                if idx + 1 < len(path) and {path[idx], path[idx + 1]} == {
                    segment.start_station_id, segment.end_station_id
                }:
                    start = idx
                    break
    return [(path[i], path[i + 1]) for i in range(start, len(path) - 1)]


class RuleBasedRecommender:
    def __init__(self, topology: TopologyManager, path_graph: PathGraph):
        self.topology = topology
        self.path_graph = path_graph

    async def request_plan(self, request: RecommendationRequest) -> RecommendationResult:
        try:
            plan = self.recommend(request)
        except Exception as e:
            logger.error(f"Rule-based recommender failed: {e}", exc_info=True)
            return RecommendationResult(success=False, error=f"Failed to build plan. Details: {e}")
        return RecommendationResult(success=True, data=plan)

    def recommend(self, request: RecommendationRequest) -> RecommendationPlan:
        if request.disruption_type == "track_closure":
            return self._plan_for_closure(request)
        return self._plan_for_delay(request)

    def _plan_for_closure(self, request: RecommendationRequest) -> RecommendationPlan:
        actions = []
        for train in [request.delayed_train, *request.other_trains]:
            if train.get("status") not in _ACTIVE:
                continue
            blocked = [
                (a, b) for a, b in remaining_edges(self.topology, train)
                if self.topology.find_segment(a, b) is None
            ]
            if not blocked:
                continue

            a, b = blocked[0]
            route = self.path_graph.find_shortest_path(train["originStationId"], train["destinationStationId"])
            if route is None or len(route.path) < 2:
                actions.append(HoldAction(
                    train_id=train["id"],
                    reason=f"No route left to {train['destinationStationId']} after closure of {a}-{b}.",
                ))
                continue
            actions.append(RerouteAction(
                train_id=train["id"],
                new_path=route.path,
                reason=f"Rerouting to avoid track closure between {a} and {b}.",
            ))

        rerouted = sum(1 for a in actions if a.action == "reroute")
        summary = f"Track closure: {rerouted} train(s) rerouted, {len(actions) - rerouted} held."
        return RecommendationPlan(summary=summary, actions=actions)

    def _plan_for_delay(self, request: RecommendationRequest) -> RecommendationPlan:
        delayed = request.delayed_train
        actions = [HoldAction(
            train_id=delayed["id"],
            hold_duration=request.delay_duration,
            reason=f"Delayed by {request.delay_duration:g} minutes.",
        )]

        blocked_pair = _segment_pair(self.topology, delayed)
        if blocked_pair is not None:
            for train in request.other_trains:
                if train.get("status") != "moving":
                    continue
                ahead = remaining_edges(self.topology, train)[:2]
                if any(frozenset(edge) == blocked_pair for edge in ahead):
                    actions.append(HoldAction(
                        train_id=train["id"],
                        hold_duration=request.delay_duration,
                        reason=f"Segment ahead is occupied by delayed train {delayed['id']}.",
                    ))

        summary = f"Delay of {delayed['id']}: holding {len(actions)} train(s)."
        return RecommendationPlan(summary=summary, actions=actions)


def get_recommender(topology: TopologyManager, path_graph: PathGraph):
    """HTTP recommender when RECOMMENDER_URL is set, else the rule-based engine"""
    if settings.RECOMMENDER_URL:
        return get_recommendation_client()
    return RuleBasedRecommender(topology, path_graph)
