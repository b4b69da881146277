"""
Track aggregate: curve points and signals are owned; junction ids and each
signal's protected track ids are weak references.
"""
import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy import or_

from railcore.core.types import SignalType
from railcore.db.models import CurvePointRow, SignalRow, SignalTrackLink, TrackRow
from railcore.repositories.base import AggregateStore, ChildFinder, enum_member, new_id, sequenced
from railcore.schemas import Signal, Track

logger = logging.getLogger(__name__)


# Filters

def owned_by(owner_id: str):
    return TrackRow.owner_id == owner_id


def touches_junction(junction_id: str):
    return or_(TrackRow.start_junction_id == junction_id, TrackRow.end_junction_id == junction_id)


def max_speed_at_least(max_speed: float):
    return TrackRow.max_speed >= max_speed


def length_between(min_length: float, max_length: float):
    return TrackRow.length.between(min_length, max_length)


class TrackStore(AggregateStore[Track]):
    entity_type = "Track"
    row_type = TrackRow
    schema_type = Track
    relations = {
        "curve": (TrackRow.curve,),
        "signals": (TrackRow.signals,),
    }
    owned = {
        "curve": (CurvePointRow, "track_id"),
        "signals": (SignalRow, "track_id"),
    }

    def _prepare(self, track: Track, writing: FrozenSet[str]) -> Track:
        if "curve" not in writing or track.curve is None:
            return track
        return track.model_copy(update={
            "curve": sequenced(self.entity_type, "curve", track.curve, contiguous=True),
        })

    def _scalar_values(self, track: Track) -> Dict[str, Any]:
        return {
            "owner_id": track.owner_id,
            "length": track.length,
            "max_speed": track.max_speed,
            "start_junction_id": track.start_junction_id,
            "end_junction_id": track.end_junction_id,
        }

    def _child_rows(self, name: str, root_id: str, track: Track,
                    now: datetime, fresh_ids: bool) -> List[Any]:
        if name == "curve":
            return [
                CurvePointRow(track_id=root_id, x=p.x, y=p.y, z=p.z, sequence_order=p.sequence_order)
                for p in track.curve or []
            ]
        rows = []
        for ordinal, signal in enumerate(track.signals or []):
            rows.append(SignalRow(
                id=new_id() if fresh_ids or not signal.id else signal.id,
                ordinal=ordinal,
                track_id=root_id,
                signal_type=signal.signal_type,
                position_x=signal.position.x,
                position_y=signal.position.y,
                position_z=signal.position.z,
                protected_links=[
                    SignalTrackLink(position=i, track_id=protected)
                    for i, protected in enumerate(signal.protected_track_ids)
                ],
            ))
        return rows

    # Named finders

    def find_by_owner_id(self, owner_id: str) -> List[Track]:
        return self.find(owned_by(owner_id))

    def find_by_owner_id_with_relations(self, owner_id: str,
                                        relations: Optional[Iterable[str]] = None) -> List[Track]:
        return self.find_with_relations(owned_by(owner_id), relations=relations)

    def find_by_junction_id(self, junction_id: str) -> List[Track]:
        return self.find(touches_junction(junction_id))

    def find_by_junction_id_with_relations(self, junction_id: str,
                                           relations: Optional[Iterable[str]] = None) -> List[Track]:
        return self.find_with_relations(touches_junction(junction_id), relations=relations)

    def find_by_max_speed_at_least(self, max_speed: float) -> List[Track]:
        return self.find(max_speed_at_least(max_speed))

    def find_by_length_between(self, min_length: float, max_length: float) -> List[Track]:
        return self.find(length_between(min_length, max_length))


class SignalFinder(ChildFinder[Signal]):
    entity_type = "Signal"
    row_type = SignalRow
    schema_type = Signal

    def _default_order(self):
        return (SignalRow.track_id, SignalRow.ordinal)

    def find_by_signal_type(self, signal_type: SignalType) -> List[Signal]:
        return self.find(SignalRow.signal_type == enum_member(SignalType, "signal_type", signal_type))

    def find_by_protected_track_ids_containing(self, track_id: str) -> List[Signal]:
        return self.find(SignalRow.protected_links.any(SignalTrackLink.track_id == track_id))

    def find_by_track_id(self, track_id: str) -> List[Signal]:
        return self.find(SignalRow.track_id == track_id)
