# backend/railflow/core/realtime_manager.py

import asyncio
from typing import Dict, Any, Optional, List, Sequence
from datetime import datetime, timedelta, timezone
import uuid
import logging

from railflow.core.clock import SimulationClock
from railflow.core.config import settings
from railflow.core.graph_builder import PathGraph, TopologyManager
from railflow.core.models import Segment, Train, TrainStatus
from railflow.core.reconciler import DisruptionReconciler
from railflow.core.train_simulator import (
    TrainMotionSimulator,
    calculate_eta,
    initialize_trains,
    parse_departure,
    segment_heading,
    set_train_status,
)
from railflow.core.twin_schema import (
    ActionOutcome,
    RecommendationRequest,
    RecommendationResult,
    ResumeAction,
    TrainAction,
)
from railflow.services.network_loader import NetworkData, load_network, station_to_dict, track_to_dict
from railflow.services.recommendation_engine import get_recommender

logger = logging.getLogger(__name__)

MAX_NOTICES = 20


# ============================================================
# SIMULATION ENGINE
# ============================================================

class SimulationEngine:
    """
    Owns the live simulation: clock, topology, trains.

    All mutation of train and segment state happens on the event loop under
    `self.lock`, one tick or one plan application at a time. Plan requests
    run as separate tasks so ticking never waits on the recommender.
    """

    def __init__(
        self,
        network: Optional[NetworkData] = None,
        clock: Optional[SimulationClock] = None,
        recommender=None,
    ):
        self.network = network or load_network()
        self.clock = clock or SimulationClock()
        self.topology = TopologyManager(self.network.stations, self.network.tracks)
        self.path_graph = PathGraph(self.topology)
        self.simulator = TrainMotionSimulator(self.topology)
        self.reconciler = DisruptionReconciler(self.topology, self.path_graph)
        self.recommender = recommender or get_recommender(self.topology, self.path_graph)

        self.trains: List[Train] = []
        self.generation = self.clock.generation
        self.lock = asyncio.Lock()
        self.clients: Dict[str, Any] = {}
        self.notices: List[Dict[str, Any]] = []
        self.pending_requests: Dict[str, int] = {}
        self.scheduled_resumes: Dict[str, datetime] = {}
        self._request_seq = 0
        self._tasks: set = set()
        self._loop_task: Optional[asyncio.Task] = None
        self.running = False

        self.reset_state()

    # ------------------------------------------------------------------ state
    def reset_state(self) -> None:
        """Re-derive segments and rebuild every train from its profile"""
        self.topology.reset()
        self.trains = initialize_trains(self.network.profiles, self.topology, self.path_graph)
        self.pending_requests.clear()
        self.scheduled_resumes.clear()
        self.generation = self.clock.generation

    def get_train(self, train_id: str) -> Optional[Train]:
        for train in self.trains:
            if train.id == train_id:
                return train
        return None

    def tick(self, elapsed_seconds: float) -> Dict[str, Any]:
        """One synchronous simulation step"""
        if self.clock.generation != self.generation:
            self.reset_state()

        self.clock.tick(elapsed_seconds)
        self._apply_due_resumes()

        before = {t.id: t.status for t in self.trains}
        self.simulator.step_all(self.trains, self.clock)

        for train in self.trains:
            if before.get(train.id) == TrainStatus.MOVING and train.status == TrainStatus.STOPPED:
                self.request_plan(train, "delay", settings.DELAY_REPORT_MINUTES)

        return self.snapshot()

    def _apply_due_resumes(self) -> None:
        due = [tid for tid, at in self.scheduled_resumes.items() if self.clock.time >= at]
        for train_id in due:
            del self.scheduled_resumes[train_id]
            train = self.get_train(train_id)
            if train is not None and train.status == TrainStatus.STOPPED:
                self.reconciler.apply(self.trains, [ResumeAction(train_id=train_id, reason="Hold elapsed.")])

    # ------------------------------------------------------------------ controls
    def toggle_pause(self) -> bool:
        return self.clock.toggle_pause()

    def set_speed(self, multiplier: float) -> None:
        self.clock.set_speed(multiplier)

    def reset(self) -> Dict[str, Any]:
        self.clock.reset()
        self.reset_state()
        self.notices.clear()
        return self.snapshot()

    def set_train_status(self, train_id: str, status: TrainStatus) -> Train:
        train = self.get_train(train_id)
        if train is None:
            raise KeyError(train_id)
        self.scheduled_resumes.pop(train_id, None)
        return set_train_status(train, status)

    def report_delay(self, train_id: str, delay_minutes: Optional[float] = None) -> Optional[asyncio.Task]:
        """Manual delay: stop the train and ask for a plan"""
        train = self.set_train_status(train_id, TrainStatus.STOPPED)
        minutes = settings.DELAY_REPORT_MINUTES if delay_minutes is None else delay_minutes
        return self.request_plan(train, "delay", minutes)

    def apply_actions(self, actions: Sequence[TrainAction]) -> List[ActionOutcome]:
        outcomes = self.reconciler.apply(self.trains, actions)
        for action, outcome in zip(actions, outcomes):
            if action.action in ("resume", "reroute"):
                self.scheduled_resumes.pop(outcome.train_id, None)
            elif action.action == "hold" and outcome.applied and action.hold_duration:
                self.scheduled_resumes[outcome.train_id] = self.clock.time + timedelta(minutes=action.hold_duration)
        return outcomes

    def remove_segment(self, segment_id: str) -> List[Segment]:
        """Close a segment; the first active train needing it triggers a closure plan"""
        removed = self.topology.get_segment(segment_id)
        if removed is None:
            raise KeyError(segment_id)
        remaining = self.topology.remove_segment(segment_id)

        affected = self.find_affected_train(removed)
        if affected is not None:
            self._notice("info", f"Track closed. Rerouting train {affected.id} and others.")
            self.request_plan(affected, "track_closure", 0.0, present_as_stopped=True)
        return remaining

    def restore_segment(self, segment_id: str) -> List[Segment]:
        if self.topology.get_segment(segment_id) is None:
            raise KeyError(segment_id)
        return self.topology.restore_segment(segment_id)

    def find_affected_train(self, segment: Segment) -> Optional[Train]:
        pair = {segment.start_station_id, segment.end_station_id}
        for train in self.trains:
            if train.status in (TrainStatus.FINISHED, TrainStatus.STOPPED) or train.current_segment is None:
                continue
            heading = segment_heading(train)
            if heading is None:
                continue
            start = train.path.index(heading[0])
            for i in range(start, len(train.path) - 1):
                if {train.path[i], train.path[i + 1]} == pair:
                    return train
        return None

    # ------------------------------------------------------------------ recommender
    def build_request(self, train: Train, disruption: str, delay_minutes: float,
                      present_as_stopped: bool = False) -> RecommendationRequest:
        delayed = train.to_dict()
        if present_as_stopped:
            delayed["status"] = TrainStatus.STOPPED.value
        return RecommendationRequest(
            delayed_train=delayed,
            other_trains=[t.to_dict() for t in self.trains if t.id != train.id],
            delay_duration=delay_minutes,
            disruption_type=disruption,
            stations=[station_to_dict(s) for s in self.network.stations],
            tracks=[track_to_dict(t) for t in self.network.tracks],
        )

    def request_plan(self, train: Train, disruption: str, delay_minutes: float,
                     present_as_stopped: bool = False) -> Optional[asyncio.Task]:
        """Fire a plan request without blocking the tick loop"""
        request = self.build_request(train, disruption, delay_minutes, present_as_stopped)
        self._request_seq += 1
        seq = self._request_seq
        self.pending_requests[train.id] = seq
        self._notice("info", f"Train {train.id}: {disruption} reported, optimizing schedule...")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; plan request for {train.id} not dispatched")
            return None

        task = loop.create_task(self._await_plan(train.id, seq, request, self.generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _await_plan(self, train_id: str, seq: int, request: RecommendationRequest, generation: int) -> None:
        try:
            result: RecommendationResult = await self.recommender.request_plan(request)
        except Exception as e:
            logger.error(f"Recommender raised for {train_id}: {e}", exc_info=True)
            result = RecommendationResult(success=False, error=str(e))

        async with self.lock:
            self.handle_plan_result(train_id, seq, result, generation)

    def handle_plan_result(self, train_id: str, seq: int, result: RecommendationResult, generation: int) -> List[ActionOutcome]:
        if generation != self.generation:
            logger.info(f"Dropping plan for {train_id}: simulation was reset")
            return []
        if self.pending_requests.get(train_id) != seq:
            logger.info(f"Dropping superseded plan for {train_id} (request {seq})")
            return []
        self.pending_requests.pop(train_id, None)

        if not result.success or result.data is None:
            self._notice("error", f"Optimization failed: {result.error}")
            return []

        plan = result.data
        self._notice("info", plan.summary, actions=[
            {"trainId": a.train_id, "action": a.action, "reason": a.reason} for a in plan.actions
        ])
        return self.apply_actions(plan.actions)

    def _notice(self, level: str, message: str, **extra: Any) -> None:
        self.notices.append({"level": level, "message": message, "time": self.clock.time.isoformat(), **extra})
        del self.notices[:-MAX_NOTICES]
        log = logger.error if level == "error" else logger.info
        log(message)

    # ------------------------------------------------------------------ snapshot
    def snapshot(self) -> Dict[str, Any]:
        trains = []
        for train in self.trains:
            payload = train.to_dict()
            departure = parse_departure(train.departure_time, self.clock.time)
            payload["eta"] = calculate_eta(train, departure) if departure else "N/A"
            trains.append(payload)
        return {
            "clock": self.clock.to_dict(),
            "trains": trains,
            "availableSegments": [s.id for s in self.topology.available_segments],
            "notices": list(self.notices),
        }

    # ------------------------------------------------------------------ loop
    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        self.running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        close = getattr(self.recommender, "close", None)
        if close is not None:
            await close()

    async def _run_loop(self) -> None:
        interval = settings.TICK_INTERVAL_SECONDS
        loop = asyncio.get_running_loop()
        last = loop.time()
        try:
            while self.running:
                now = loop.time()
                elapsed, last = now - last, now
                try:
                    async with self.lock:
                        snapshot = self.tick(elapsed)
                except Exception as ex:
                    # Never let a bad tick halt the loop
                    logger.error(f"Error in simulation tick: {ex}", exc_info=True)
                else:
                    if self.clients:
                        await self.broadcast({
                            "type": "frame",
                            "timestamp": datetime.now(timezone.utc).isoformat(),
                            **snapshot,
                        })
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            pass
        finally:
            self.running = False

    # ------------------------------------------------------------------ clients
    def add_client(self, websocket) -> str:
        client_id = uuid.uuid4().hex[:8]
        self.clients[client_id] = websocket
        return client_id

    def remove_client(self, client_id: str) -> None:
        self.clients.pop(client_id, None)

    async def broadcast(self, payload: dict) -> None:
        dead = []
        for cid, ws in list(self.clients.items()):
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(cid)
        for cid in dead:
            self.clients.pop(cid, None)


# ============================================================
# SINGLETON ENGINE
# ============================================================

_engine: Optional[SimulationEngine] = None


def get_simulation_engine() -> SimulationEngine:
    global _engine
    if _engine is None:
        _engine = SimulationEngine()
    return _engine


def reset_simulation_engine() -> None:
    global _engine
    _engine = None
