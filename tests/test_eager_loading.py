"""
Tests for the eager relation loaders.

The number of statements must depend on the relations requested, never on
the number of roots or child rows.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import InvalidRequestError

from railcore.db.instrumentation import QueryCounter
from railcore.db.models import StationRow

from conftest import station_data, track_data, train_data


def seed_stations(stations, count, children_each):
    for i in range(count):
        stations.create(station_data(
            name=f"Station {i}",
            connected_track_ids=[f"t{i}"],
            platforms=[{"connected_track_id": f"t{j}", "capacity": 10} for j in range(children_each)],
            gates=[{"capacity": 5, "processing_time": 1.0, "position": {"x": j, "y": 0}}
                   for j in range(children_each)],
        ))


def statements_for(engine, load):
    with QueryCounter(engine) as counter:
        result = load()
    return counter.count, result


class TestBoundedQueries:
    """Test that loaders issue a fixed number of statements."""

    def test_station_list_independent_of_children(self, engine, stations):
        seed_stations(stations, count=2, children_each=1)
        small, _ = statements_for(engine, lambda: stations.list_all_with_relations({"platforms", "gates"}))

        big_stations = [station_data(name=f"Big {i}", platforms=[
            {"connected_track_id": f"t{j}", "capacity": 10} for j in range(25)
        ]) for i in range(10)]
        for data in big_stations:
            stations.create(data)
        large, loaded = statements_for(engine, lambda: stations.list_all_with_relations({"platforms", "gates"}))

        assert len(loaded) == 12
        assert sum(len(s.platforms) for s in loaded) == 2 + 250
        assert large == small

    def test_statement_count_grows_with_relations_only(self, engine, stations):
        seed_stations(stations, count=5, children_each=4)
        root_only, _ = statements_for(engine, lambda: stations.find_with_relations(relations=()))
        one, _ = statements_for(engine, lambda: stations.find_with_relations(relations={"platforms"}))
        three, _ = statements_for(engine, lambda: stations.list_all_with_relations())
        assert one == root_only + 1
        assert three == root_only + 3

    def test_get_with_relations_bounded(self, engine, tracks):
        track = tracks.create(track_data(
            curve=[{"x": i, "y": 0} for i in range(40)],
            signals=[{"signal_type": "BLOCK", "position": {"x": i, "y": 0},
                      "protected_track_ids": [f"t{i}", f"t{i + 1}"]} for i in range(15)],
        ))
        count, loaded = statements_for(engine, lambda: tracks.get_with_relations(track.id))
        assert len(loaded.curve) == 40
        assert len(loaded.signals) == 15
        # root, curve, signals, protected track links
        assert count <= 4

    def test_train_schedule_chain_bounded(self, engine, trains):
        for i in range(6):
            trains.create(train_data(
                cars=[{"capacity": 50, "door_count": 2}] * 3,
                schedule={"route_id": f"r{i}", "stop_times": [
                    {"station_id": f"s{j}", "arrival_time": f"0{j}:00", "departure_time": f"0{j}:05"}
                    for j in range(5)
                ]},
            ))
        count, loaded = statements_for(engine, lambda: trains.list_all_with_relations())
        assert len(loaded) == 6
        assert all(len(t.schedule.stop_times) == 5 for t in loaded)
        # root, cars, schedules, stop times
        assert count <= 4


class TestNoLazyLoading:
    """Test owned collections can never be fetched lazily."""

    def test_unloaded_collection_raises(self, stations, session_factory):
        seed_stations(stations, count=1, children_each=1)
        with session_factory() as session:
            row = session.scalars(select(StationRow)).first()
            with pytest.raises(InvalidRequestError):
                _ = row.platforms

    def test_schema_from_row_skips_unloaded(self, stations, session_factory):
        from railcore.schemas import Station

        seed_stations(stations, count=1, children_each=2)
        with session_factory() as session:
            row = session.scalars(select(StationRow)).first()
            station = Station.model_validate(row)
        assert station.platforms is None
        assert station.connected_track_ids == ["t0"]
