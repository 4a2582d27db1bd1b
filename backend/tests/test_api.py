"""
HTTP and WebSocket tests for the FastAPI app.

The engine singleton is swapped for one built on the toy network, and the
background tick loop is left off so every state change is driven explicitly.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import DETOUR_LENGTH
from railflow.core import realtime_manager
from railflow.core.realtime_manager import SimulationEngine
from railflow.core.twin_schema import RecommendationPlan, RecommendationResult
from railflow.main import create_app


class NoopRecommender:
    async def request_plan(self, request):
        return RecommendationResult(success=True, data=RecommendationPlan(summary="nothing to do"))


@pytest.fixture
def engine(network, clock, monkeypatch):
    engine = SimulationEngine(network=network, clock=clock, recommender=NoopRecommender())
    monkeypatch.setattr(realtime_manager, "_engine", engine)
    return engine


@pytest.fixture
def client(engine):
    with TestClient(create_app(start_loop=False)) as client:
        yield client


class TestMeta:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_root(self, client):
        assert "running" in client.get("/").json()["message"]


class TestNetworkRoutes:
    def test_network_payload(self, client):
        body = client.get("/api/network").json()
        assert [s["id"] for s in body["stations"]] == ["A", "B", "C", "E"]
        assert body["segments"][0]["curve"] == "M 0,0 L 3,0"
        assert body["segments"][0]["startStationId"] == "A"
        assert body["stats"]["segments"] == 3

    def test_graph_adjacency(self, client):
        adjacency = client.get("/api/network/graph").json()["adjacency"]
        assert adjacency["A"]["B"] == pytest.approx(3)
        assert adjacency["E"] == {}

    def test_shortest_path(self, client):
        body = client.get("/api/network/path", params={"start": "A", "end": "C"}).json()
        assert body["path"] == ["A", "B", "C"]
        assert body["distance"] == pytest.approx(7)

    def test_unreachable_path_is_404(self, client):
        assert client.get("/api/network/path", params={"start": "A", "end": "E"}).status_code == 404

    def test_close_and_restore_segment(self, client):
        response = client.delete("/api/network/segments/T1-B-C")
        assert response.status_code == 200
        assert "T1-B-C" not in response.json()["availableSegments"]

        body = client.get("/api/network/path", params={"start": "A", "end": "C"}).json()
        assert body["distance"] == pytest.approx(DETOUR_LENGTH)

        restored = client.post("/api/network/segments/T1-B-C/restore").json()
        assert restored["availableSegments"] == ["T1-A-B", "T1-B-C", "T2-A-C"]

    def test_unknown_segment_is_404(self, client):
        assert client.delete("/api/network/segments/nope").status_code == 404
        assert client.post("/api/network/segments/nope/restore").status_code == 404


class TestSimulationRoutes:
    def test_state(self, client):
        body = client.get("/api/simulation/state").json()
        assert body["clock"]["isPaused"] is False
        assert len(body["trains"]) == 2

    def test_pause_toggles(self, client):
        assert client.post("/api/simulation/pause").json() == {"isPaused": True}
        assert client.post("/api/simulation/pause").json() == {"isPaused": False}

    def test_speed(self, client):
        assert client.post("/api/simulation/speed", json={"multiplier": 4}).json() == {"speed": 4}
        assert client.post("/api/simulation/speed", json={"multiplier": -1}).status_code == 422

    def test_manual_tick(self, client):
        body = client.post("/api/simulation/tick", json={"elapsed_seconds": 1}).json()
        assert body["clock"]["time"] == "2024-01-01T08:01:00"
        t100 = next(t for t in body["trains"] if t["id"] == "T100")
        assert t100["status"] == "moving"

    def test_reset(self, client):
        client.post("/api/simulation/tick", json={"elapsed_seconds": 1})
        body = client.post("/api/simulation/reset").json()
        assert body["clock"]["time"] == "2024-01-01T08:00:00"
        assert body["clock"]["generation"] == 1

    def test_set_train_status(self, client):
        body = client.put("/api/simulation/trains/T200/status", json={"status": "moving"}).json()
        assert body["status"] == "moving"
        assert body["currentSpeed"] == 100

    def test_set_status_validation(self, client):
        assert client.put("/api/simulation/trains/GHOST/status", json={"status": "moving"}).status_code == 404
        assert client.put("/api/simulation/trains/T100/status", json={"status": "flying"}).status_code == 422

    def test_report_delay(self, client):
        body = client.post("/api/simulation/trains/T100/delay", json={"delay_minutes": 10}).json()
        assert body["status"] == "optimizing"
        assert body["train"]["status"] == "stopped"
        assert client.post("/api/simulation/trains/GHOST/delay", json={}).status_code == 404

    def test_apply_actions(self, client, engine):
        plan = {
            "summary": "manual",
            "actions": [
                {"trainId": "T100", "action": "hold", "reason": "inspection"},
                {"trainId": "GHOST", "action": "resume"},
            ],
        }
        body = client.post("/api/simulation/actions", json=plan).json()
        assert [o["applied"] for o in body["outcomes"]] == [True, False]
        assert engine.get_train("T100").status.value == "stopped"

    def test_unknown_action_is_rejected(self, client):
        plan = {"actions": [{"trainId": "T100", "action": "teleport"}]}
        assert client.post("/api/simulation/actions", json=plan).status_code == 422


class TestWebSocket:
    def test_initial_snapshot(self, client, engine):
        with client.websocket_connect("/ws/simulation") as ws:
            message = ws.receive_json()
            assert message["type"] == "initial"
            assert {t["id"] for t in message["trains"]} == {"T100", "T200"}
            assert len(engine.clients) == 1
