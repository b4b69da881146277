"""
Tests for TrackStore and SignalFinder.

Tests curve sequencing rules, signals with weak protected-track references
and the track finders.
"""

import math

import pytest

from railcore.core.errors import IntegrityError, ValidationError
from railcore.core.types import SignalType
from railcore.repositories.tracks import max_speed_at_least, owned_by

from conftest import track_data


def curve(*points):
    return [{"x": x, "y": y, "sequence_order": seq} for seq, (x, y) in points]


class TestTrackCreate:
    """Test track creation with curve points and signals."""

    def test_signal_protecting_missing_track(self, tracks, signal_finder):
        """Test a signal may protect a track that does not exist."""
        track = tracks.create(track_data(
            curve=curve((0, (0.0, 0.0)), (1, (3.0, 4.0))),
            signals=[{
                "signal_type": "BLOCK",
                "position": {"x": 1.0, "y": 1.0},
                "protected_track_ids": ["t2"],
            }],
        ))
        assert not tracks.exists_by_id("t2")

        found = signal_finder.find_by_protected_track_ids_containing("t2")
        assert len(found) == 1
        assert found[0].track_id == track.id
        assert found[0].signal_type is SignalType.BLOCK
        assert found[0].protected_track_ids == ["t2"]

    def test_curve_returned_in_sequence_order(self, tracks):
        """Test curve points are stored and read back sorted by sequence."""
        track = tracks.create(track_data(curve=curve((2, (2, 0)), (0, (0, 0)), (1, (1, 0)))))
        loaded = tracks.get_with_relations(track.id, {"curve"})
        assert [p.sequence_order for p in loaded.curve] == [0, 1, 2]
        assert [p.x for p in loaded.curve] == [0, 1, 2]

    def test_curve_without_orders_is_numbered(self, tracks):
        """Test omitted sequence orders are assigned in list order."""
        track = tracks.create(track_data(curve=[{"x": 5, "y": 5}, {"x": 6, "y": 5}]))
        assert [(p.sequence_order, p.x) for p in track.curve] == [(0, 5), (1, 6)]

    def test_curve_length(self, tracks):
        track = tracks.create(track_data(curve=curve((0, (0, 0)), (1, (3, 4)), (2, (3, 10)))))
        assert math.isclose(track.curve_length(), 11.0)
        assert tracks.get_by_id(track.id).curve_length() is None

    def test_junction_ids(self, tracks):
        track = tracks.create(track_data(start_junction_id="j1"))
        assert track.junction_ids() == ["j1"]


class TestCurveValidation:
    """Test curve sequence rules."""

    def test_duplicate_sequence_is_integrity_error(self, tracks):
        with pytest.raises(IntegrityError):
            tracks.create(track_data(curve=curve((0, (0, 0)), (0, (1, 1)))))
        assert tracks.count() == 0

    def test_gap_in_sequence_is_validation_error(self, tracks):
        with pytest.raises(ValidationError):
            tracks.create(track_data(curve=curve((0, (0, 0)), (2, (1, 1)))))

    def test_partial_sequence_is_validation_error(self, tracks):
        with pytest.raises(ValidationError):
            tracks.create(track_data(curve=[
                {"x": 0, "y": 0, "sequence_order": 0},
                {"x": 1, "y": 1},
            ]))

    @pytest.mark.parametrize("overrides", [
        {"length": 0},
        {"max_speed": -1},
        {"owner_id": ""},
    ])
    def test_invalid_scalars_rejected(self, tracks, overrides):
        with pytest.raises(ValidationError):
            tracks.create(track_data(**overrides))
        assert tracks.count() == 0

    def test_unknown_signal_type_rejected(self, tracks):
        with pytest.raises(ValidationError):
            tracks.create(track_data(signals=[{"signal_type": "SEMAPHORE", "position": {"x": 0, "y": 0}}]))


class TestTrackDelete:
    """Test deletion leaves weak references dangling."""

    def test_delete_keeps_referencing_signals(self, tracks, signal_finder):
        target = tracks.create(track_data(id="t2"))
        tracks.create(track_data(signals=[{
            "signal_type": "ABSOLUTE",
            "position": {"x": 0, "y": 0},
            "protected_track_ids": ["t2"],
        }]))

        tracks.delete_by_id(target.id)

        signals = signal_finder.find_by_protected_track_ids_containing("t2")
        assert len(signals) == 1
        assert signals[0].protected_track_ids == ["t2"]

    def test_delete_removes_own_signals(self, tracks, signal_finder):
        track = tracks.create(track_data(signals=[{"signal_type": "PATH", "position": {"x": 0, "y": 0}}]))
        tracks.delete_by_id(track.id)
        assert signal_finder.find_by_track_id(track.id) == []


class TestTrackFinders:
    """Test track and signal finders."""

    def test_find_by_junction_matches_either_end(self, tracks):
        a = tracks.create(track_data(start_junction_id="j1", end_junction_id="j2"))
        b = tracks.create(track_data(start_junction_id="j2", end_junction_id="j3"))
        tracks.create(track_data(start_junction_id="j3", end_junction_id="j4"))
        assert {t.id for t in tracks.find_by_junction_id("j2")} == {a.id, b.id}

    def test_speed_and_length_finders(self, tracks):
        tracks.create(track_data(length=100.0, max_speed=60.0))
        fast = tracks.create(track_data(length=2000.0, max_speed=200.0))
        assert [t.id for t in tracks.find_by_max_speed_at_least(150.0)] == [fast.id]
        assert [t.length for t in tracks.find_by_length_between(50.0, 150.0)] == [100.0]

    def test_filters_compose(self, tracks):
        tracks.create(track_data(owner_id="p1", max_speed=200.0))
        tracks.create(track_data(owner_id="p2", max_speed=200.0))
        assert len(tracks.find(owned_by("p1"), max_speed_at_least(100.0))) == 1

    def test_find_with_relations_loads_signals(self, tracks):
        tracks.create(track_data(owner_id="p9", signals=[{"signal_type": "BLOCK", "position": {"x": 0, "y": 0}}]))
        found = tracks.find_by_owner_id_with_relations("p9", {"signals"})
        assert len(found[0].signals) == 1
        assert found[0].curve is None

    def test_signal_finder_by_type(self, tracks, signal_finder):
        tracks.create(track_data(signals=[
            {"signal_type": "BLOCK", "position": {"x": 0, "y": 0}},
            {"signal_type": "SHUNTING", "position": {"x": 1, "y": 0}},
        ]))
        assert len(signal_finder.find_by_signal_type(SignalType.SHUNTING)) == 1
        assert len(signal_finder.find_by_signal_type("BLOCK")) == 1

    def test_finder_rejects_unknown_signal_type(self, signal_finder):
        with pytest.raises(ValidationError) as exc_info:
            signal_finder.find_by_signal_type("SEMAPHORE")
        assert exc_info.value.errors[0]["loc"] == ["signal_type"]
