"""
Tests for optimistic concurrency on update.

Tests version counting, stale-version conflicts and owned-collection
replacement.
"""

import threading

import pytest
from sqlalchemy.orm import sessionmaker

from railcore.core.errors import ConcurrencyConflict, NotFoundError, ValidationError
from railcore.db.session import build_engine, init_schema
from railcore.repositories import StationStore
from railcore.schemas import CurvePoint, Platform, Schedule, StopTime

from conftest import station_data, train_data


class TestVersioning:
    """Test the version counter."""

    @pytest.mark.parametrize("n", [1, 3, 5])
    def test_version_counts_updates(self, stations, n):
        """Test version == 1 + n after n successful updates."""
        station = stations.create(station_data())
        for i in range(n):
            station = stations.update(station.model_copy(update={"total_capacity": 1000 + i}))
        assert station.version == 1 + n
        assert stations.get_by_id(station.id).version == 1 + n

    def test_update_bumps_updated_at_only(self, stations):
        station = stations.create(station_data())
        updated = stations.update(station.model_copy(update={"owner_id": "p2"}))
        assert updated.created_at == station.created_at
        assert updated.updated_at >= station.updated_at
        assert updated.owner_id == "p2"

    def test_update_rewrites_weak_references(self, stations):
        station = stations.create(station_data(connected_track_ids=["t1", "t2"]))
        updated = stations.update(station.model_copy(update={"connected_track_ids": ["t3"]}))
        assert updated.connected_track_ids == ["t3"]
        assert stations.find_by_connected_track_id("t1") == []


class TestStaleUpdates:
    """Test that stale writers are rejected and change nothing."""

    def test_stale_version_conflicts(self, stations):
        original = stations.create(station_data())
        stations.update(original.model_copy(update={"total_capacity": 2000}))

        with pytest.raises(ConcurrencyConflict) as exc_info:
            stations.update(original.model_copy(update={"total_capacity": 3000}))

        assert exc_info.value.expected_version == 1
        stored = stations.get_by_id(original.id)
        assert stored.total_capacity == 2000
        assert stored.version == 2

    def test_stale_replace_leaves_children(self, stations):
        """Test a conflicting child replacement is rolled back entirely."""
        original = stations.create(station_data(platforms=[{"connected_track_id": "t1", "capacity": 200}]))
        stations.update(original)

        stale = original.model_copy(update={"platforms": []})
        with pytest.raises(ConcurrencyConflict):
            stations.update(stale, replace={"platforms"})

        stored = stations.get_with_relations(original.id, {"platforms"})
        assert [p.id for p in stored.platforms] == [p.id for p in original.platforms]

    def test_two_writers_from_same_read(self, trains):
        """Test only the first of two writers holding the same version wins."""
        train = trains.create(train_data())
        first = train.model_copy(update={"total_capacity": 700})
        second = train.model_copy(update={"total_capacity": 800})

        trains.update(first)
        with pytest.raises(ConcurrencyConflict):
            trains.update(second)
        assert trains.get_by_id(train.id).total_capacity == 700

    def test_update_missing_is_not_found(self, stations):
        station = stations.create(station_data())
        stations.delete_by_id(station.id)
        with pytest.raises(NotFoundError):
            stations.update(station)

    def test_update_requires_version(self, stations):
        station = stations.create(station_data())
        with pytest.raises(ValidationError):
            stations.update(station.model_copy(update={"version": None}))


class TestReplaceChildren:
    """Test wholesale replacement of owned collections."""

    def test_untouched_without_replace(self, stations):
        """Test owned collections are not mutated by a plain update."""
        station = stations.create(station_data(platforms=[{"connected_track_id": "t1", "capacity": 200}]))
        stations.update(station.model_copy(update={"platforms": []}))
        assert len(stations.get_with_relations(station.id, {"platforms"}).platforms) == 1

    def test_replace_swaps_children(self, stations, platform_finder):
        station = stations.create(station_data(platforms=[{"connected_track_id": "t1", "capacity": 200}]))
        old_id = station.platforms[0].id

        updated = stations.update(
            station.model_copy(update={"platforms": [
                Platform(connected_track_id="t7", capacity=10),
                Platform(connected_track_id="t8", capacity=20),
            ]}),
            replace={"platforms"},
        )

        assert updated.version == 2
        assert sorted(p.connected_track_id for p in updated.platforms) == ["t7", "t8"]
        assert old_id not in {p.id for p in updated.platforms}
        assert platform_finder.get_by_id(old_id) is None
        assert updated.gates is None

    def test_replace_schedule(self, trains, stop_time_finder):
        train = trains.create(train_data(schedule={"route_id": "r1", "stop_times": [
            {"station_id": "s1", "arrival_time": "08:00", "departure_time": "08:01"},
        ]}))
        old_schedule_id = train.schedule.id

        updated = trains.update(
            train.model_copy(update={"schedule": Schedule(route_id="r2", stop_times=[
                StopTime(station_id="s5", arrival_time="10:00", departure_time="10:01"),
                StopTime(station_id="s6", arrival_time="10:30", departure_time="10:31"),
            ])}),
            replace={"schedule"},
        )

        assert updated.schedule.route_id == "r2"
        assert updated.schedule.id != old_schedule_id
        assert stop_time_finder.find_by_schedule_id(old_schedule_id) == []
        assert [st.station_id for st in updated.schedule.stop_times] == ["s5", "s6"]

    def test_replace_unknown_relation(self, stations):
        station = stations.create(station_data())
        with pytest.raises(ValidationError):
            stations.update(station, replace={"tracks"})

    def test_replace_curve_revalidates_sequence(self, tracks):
        track = tracks.create({"owner_id": "p1", "length": 10.0, "max_speed": 50.0})
        with pytest.raises(ValidationError):
            tracks.update(
                track.model_copy(update={"curve": [
                    CurvePoint(x=0, y=0, sequence_order=0),
                    CurvePoint(x=1, y=1, sequence_order=5),
                ]}),
                replace={"curve"},
            )
        assert tracks.get_by_id(track.id).version == 1


class TestConcurrentWriters:
    """Test two threads racing on one root against a file-backed database."""

    @pytest.fixture
    def file_stations(self, tmp_path):
        file_engine = build_engine(f"sqlite:///{tmp_path / 'rail.db'}")
        init_schema(file_engine)
        yield StationStore(sessionmaker(bind=file_engine, autoflush=False))
        file_engine.dispose()

    def test_exactly_one_writer_wins(self, file_stations):
        station = file_stations.create(station_data())
        barrier = threading.Barrier(2)
        outcomes = []

        def write(capacity):
            barrier.wait()
            try:
                file_stations.update(station.model_copy(update={"total_capacity": capacity}))
                outcomes.append(("ok", capacity))
            except ConcurrencyConflict:
                outcomes.append(("conflict", capacity))

        writers = [threading.Thread(target=write, args=(c,)) for c in (2000, 3000)]
        for writer in writers:
            writer.start()
        for writer in writers:
            writer.join(timeout=30)

        assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"]
        winner = next(capacity for kind, capacity in outcomes if kind == "ok")
        stored = file_stations.get_by_id(station.id)
        assert stored.version == 2
        assert stored.total_capacity == winner
