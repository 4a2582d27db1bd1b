r"""
Shared fixtures: a four-station toy network.

    A(0,0) --3-- B(3,0) --4-- C(3,4)        E(20,20) isolated
      \________ T2 via (-1,5) ________/

T1 runs A-B-C (segments T1-A-B, T1-B-C), T2 is a single longer curved
segment T2-A-C used as the detour when T1-B-C is closed.
"""

from datetime import datetime

import pytest

from railflow.core.clock import SimulationClock
from railflow.core.graph_builder import PathGraph, TopologyManager
from railflow.core.models import Point, Station, Track, TrainProfile
from railflow.services.network_loader import NetworkData

START = datetime(2024, 1, 1, 8, 0)
DETOUR_LENGTH = 26 ** 0.5 + 17 ** 0.5


@pytest.fixture
def stations():
    return [
        Station("A", "Alpha", Point(0, 0)),
        Station("B", "Bravo", Point(3, 0)),
        Station("C", "Charlie", Point(3, 4)),
        Station("E", "Echo", Point(20, 20)),
    ]


@pytest.fixture
def tracks():
    return [
        Track("T1", (Point(0, 0), Point(3, 0), Point(3, 4))),
        Track("T2", (Point(0, 0), Point(-1, 5), Point(3, 4))),
    ]


@pytest.fixture
def profiles():
    return [
        TrainProfile("T100", 100.0, 1, "08:00", "A", "C"),
        TrainProfile("T200", 100.0, 2, "09:00", "C", "A"),
    ]


@pytest.fixture
def network(stations, tracks, profiles):
    return NetworkData(stations=stations, tracks=tracks, profiles=profiles)


@pytest.fixture
def topology(stations, tracks):
    return TopologyManager(stations, tracks)


@pytest.fixture
def path_graph(topology):
    return PathGraph(topology)


@pytest.fixture
def clock():
    return SimulationClock(start_time=START, time_multiplier=60)
