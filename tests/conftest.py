"""
RailCore test configuration and fixtures.

Every test gets its own in-memory SQLite database with the schema created,
and stores bound to it.
"""

import pytest
from sqlalchemy.orm import sessionmaker

from railcore.db.session import build_engine, init_schema
from railcore.repositories import (
    CarFinder,
    GateFinder,
    PlatformFinder,
    ScheduleStore,
    SignalFinder,
    StationStore,
    StopTimeFinder,
    TrackStore,
    TrainStore,
)


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    db_engine = build_engine("sqlite://")
    init_schema(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def stations(session_factory):
    return StationStore(session_factory)


@pytest.fixture
def tracks(session_factory):
    return TrackStore(session_factory)


@pytest.fixture
def trains(session_factory):
    return TrainStore(session_factory)


@pytest.fixture
def schedules(session_factory):
    return ScheduleStore(session_factory)


@pytest.fixture
def platform_finder(session_factory):
    return PlatformFinder(session_factory)


@pytest.fixture
def gate_finder(session_factory):
    return GateFinder(session_factory)


@pytest.fixture
def signal_finder(session_factory):
    return SignalFinder(session_factory)


@pytest.fixture
def car_finder(session_factory):
    return CarFinder(session_factory)


@pytest.fixture
def stop_time_finder(session_factory):
    return StopTimeFinder(session_factory)


def station_data(name="Tokyo", owner_id="p1", **overrides):
    """Minimal valid station payload."""
    data = {
        "name": name,
        "owner_id": owner_id,
        "total_capacity": 1000,
        "location": {"x": 35.68, "y": 139.76, "z": 0.0},
    }
    data.update(overrides)
    return data


def track_data(owner_id="p1", **overrides):
    """Minimal valid track payload."""
    data = {
        "owner_id": owner_id,
        "length": 1200.0,
        "max_speed": 120.0,
    }
    data.update(overrides)
    return data


def train_data(owner_id="p1", train_type="LOCAL", **overrides):
    """Minimal valid train payload."""
    data = {
        "owner_id": owner_id,
        "train_type": train_type,
        "total_capacity": 600,
        "door_count": 12,
    }
    data.update(overrides)
    return data


@pytest.fixture
def tokyo(stations):
    """Station "Tokyo" with one platform serving track t1."""
    return stations.create(station_data(
        platforms=[{"connected_track_id": "t1", "capacity": 200}],
    ))
