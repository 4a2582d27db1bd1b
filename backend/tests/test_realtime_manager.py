"""Tests for the simulation engine: ticking, disruptions and plan handling."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import START

from railflow.core.models import TrainStatus
from railflow.core.realtime_manager import SimulationEngine
from railflow.core.twin_schema import HoldAction, RecommendationPlan, RecommendationResult, ResumeAction


class FakeRecommender:
    """Records requests and answers with a preset result."""

    def __init__(self, result=None):
        self.requests = []
        self.result = result or RecommendationResult(success=True, data=RecommendationPlan(summary="noop"))

    async def request_plan(self, request):
        self.requests.append(request)
        return self.result


@pytest.fixture
def recommender():
    return FakeRecommender()


@pytest.fixture
def engine(network, clock, recommender):
    return SimulationEngine(network=network, clock=clock, recommender=recommender)


def hold_plan(train_id, minutes=None):
    return RecommendationResult(
        success=True,
        data=RecommendationPlan(summary=f"Hold {train_id}", actions=[HoldAction(train_id=train_id, hold_duration=minutes)]),
    )


class TestTick:
    def test_tick_moves_clock_and_departs_trains(self, engine, clock):
        snapshot = engine.tick(1.0)
        assert clock.time.minute == 1
        t100 = engine.get_train("T100")
        assert t100.status == TrainStatus.MOVING
        assert {t["id"] for t in snapshot["trains"]} == {"T100", "T200"}
        assert snapshot["availableSegments"] == ["T1-A-B", "T1-B-C", "T2-A-C"]

    def test_snapshot_includes_eta(self, engine):
        snapshot = engine.tick(1.0)
        etas = {t["id"]: t["eta"] for t in snapshot["trains"]}
        assert etas == {"T100": "08:02", "T200": "N/A"}

    def test_stop_during_step_requests_delay_plan(self, engine):
        engine.topology.remove_segment("T1-B-C")
        train = engine.get_train("T100")
        train.status = TrainStatus.MOVING
        train.current_speed = train.speed
        train.segment_progress = 0.9999

        engine.tick(0.1)
        assert train.status == TrainStatus.STOPPED
        assert "T100" in engine.pending_requests
        assert "delay reported" in engine.notices[-1]["message"]

    def test_clock_reset_rebuilds_trains(self, engine, clock):
        engine.tick(1.0)
        clock.reset()
        engine.tick(0.0)
        assert engine.generation == clock.generation
        assert engine.get_train("T100").segment_progress <= 0.0002


class TestControls:
    def test_set_status_unknown_train(self, engine):
        with pytest.raises(KeyError):
            engine.set_train_status("GHOST", TrainStatus.STOPPED)

    def test_reset_clears_notices(self, engine):
        engine.report_delay("T100")
        snapshot = engine.reset()
        assert snapshot["notices"] == []
        assert snapshot["clock"]["generation"] == 1

    def test_remove_unknown_segment(self, engine):
        with pytest.raises(KeyError):
            engine.remove_segment("nope")

    def test_closure_on_route_requests_plan(self, engine):
        engine.tick(1.0)
        engine.remove_segment("T1-B-C")
        assert "T100" in engine.pending_requests
        assert engine.notices[0]["message"].startswith("Track closed")
        assert not engine.topology.is_available("T1-B-C")

    def test_closure_off_route_requests_nothing(self, engine):
        engine.tick(1.0)
        engine.remove_segment("T2-A-C")
        assert engine.pending_requests == {}

    def test_closure_ahead_of_reverse_train(self, engine):
        engine.set_train_status("T100", TrainStatus.STOPPED)
        t200 = engine.set_train_status("T200", TrainStatus.MOVING)
        closed = engine.topology.get_segment("T1-B-C")
        assert engine.find_affected_train(closed) is t200

        engine.remove_segment("T1-B-C")
        assert list(engine.pending_requests) == ["T200"]

    def test_segment_behind_reverse_train_is_not_ahead(self, engine):
        engine.set_train_status("T100", TrainStatus.STOPPED)
        t200 = engine.set_train_status("T200", TrainStatus.MOVING)
        t200.current_segment = engine.topology.get_segment("T1-A-B")
        assert engine.find_affected_train(engine.topology.get_segment("T1-B-C")) is None

    def test_restore_segment(self, engine):
        engine.remove_segment("T2-A-C")
        assert [s.id for s in engine.restore_segment("T2-A-C")][-1] == "T2-A-C"


class TestPlanResults:
    def test_stale_sequence_is_dropped(self, engine):
        engine.report_delay("T100")
        first = engine.pending_requests["T100"]
        engine.report_delay("T100")
        assert engine.handle_plan_result("T100", first, hold_plan("T100"), engine.generation) == []

    def test_result_from_previous_generation_is_dropped(self, engine):
        engine.report_delay("T100")
        seq = engine.pending_requests["T100"]
        engine.reset()
        assert engine.handle_plan_result("T100", seq, hold_plan("T100"), 0) == []

    def test_failure_adds_error_notice(self, engine):
        engine.report_delay("T100")
        seq = engine.pending_requests["T100"]
        engine.handle_plan_result("T100", seq, RecommendationResult(success=False, error="down"), engine.generation)
        assert engine.notices[-1]["level"] == "error"
        assert "down" in engine.notices[-1]["message"]

    def test_hold_with_duration_resumes_later(self, engine, clock):
        engine.tick(1.0)
        engine.report_delay("T100")
        seq = engine.pending_requests["T100"]
        [outcome] = engine.handle_plan_result("T100", seq, hold_plan("T100", 5), engine.generation)
        assert outcome.applied
        assert engine.scheduled_resumes["T100"] == clock.time + timedelta(minutes=5)

        engine.tick(1.0)
        assert engine.get_train("T100").status == TrainStatus.STOPPED
        engine.tick(5.0)
        assert engine.get_train("T100").status == TrainStatus.MOVING
        assert "T100" not in engine.scheduled_resumes

    def test_explicit_resume_cancels_scheduled_one(self, engine):
        engine.apply_actions([HoldAction(train_id="T100", hold_duration=30)])
        engine.apply_actions([ResumeAction(train_id="T100")])
        assert engine.scheduled_resumes == {}

    def test_delay_round_trip_through_recommender(self, engine, recommender):
        recommender.result = hold_plan("T100")

        async def go():
            task = engine.report_delay("T100", 10)
            await task

        asyncio.run(go())
        [request] = recommender.requests
        assert request.disruption_type == "delay"
        assert request.delay_duration == 10
        assert request.delayed_train["status"] == "stopped"
        assert engine.pending_requests == {}
        assert engine.notices[-1]["message"] == "Hold T100"

    def test_closure_request_presents_train_as_stopped(self, engine, recommender):
        engine.tick(1.0)

        async def go():
            engine.remove_segment("T1-B-C")
            await asyncio.gather(*engine._tasks)

        asyncio.run(go())
        [request] = recommender.requests
        assert request.disruption_type == "track_closure"
        assert request.delay_duration == 0
        assert request.delayed_train["status"] == "stopped"
        assert engine.get_train("T100").status == TrainStatus.MOVING


class TestLoopAndClients:
    def test_broadcast_drops_dead_clients(self, engine):
        alive = MagicMock()
        alive.send_json = AsyncMock()
        dead = MagicMock()
        dead.send_json = AsyncMock(side_effect=RuntimeError("socket closed"))
        engine.add_client(alive)
        engine.add_client(dead)

        asyncio.run(engine.broadcast({"type": "frame"}))
        assert list(engine.clients.values()) == [alive]
        alive.send_json.assert_awaited_once_with({"type": "frame"})

    def test_loop_ticks_and_broadcasts_until_stopped(self, engine, clock):
        socket = MagicMock()
        socket.send_json = AsyncMock()
        engine.add_client(socket)

        async def go():
            await engine.start()
            await asyncio.sleep(0.1)
            await engine.stop()

        with patch("railflow.core.realtime_manager.settings.TICK_INTERVAL_SECONDS", 0.01):
            asyncio.run(go())

        assert not engine.running
        assert clock.time > START
        assert socket.send_json.await_args.args[0]["type"] == "frame"

    def test_loop_survives_a_failing_tick(self, engine):
        calls = []

        def flaky_tick(elapsed):
            calls.append(elapsed)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return {}

        async def go():
            with patch.object(engine, "tick", side_effect=flaky_tick):
                await engine.start()
                await asyncio.sleep(0.05)
                await engine.stop()

        with patch("railflow.core.realtime_manager.settings.TICK_INTERVAL_SECONDS", 0.01):
            asyncio.run(go())
        assert len(calls) > 1
