"""
Read-time resolution of weak references.

Weak ids (connected tracks, protected tracks, stop stations) carry no foreign
key; a target may have been deleted or never created. Resolution is best
effort: a dangling id resolves to absent, never to an error.
"""
import logging
from typing import Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from railcore.core.errors import ValidationError
from railcore.repositories import ScheduleStore, StationStore, TrackStore, TrainStore
from railcore.repositories.base import AggregateStore
from railcore.schemas import AuditedModel, Schedule, Signal, Station, Track

logger = logging.getLogger(__name__)

AggT = TypeVar("AggT", bound=AuditedModel)


class ReferenceResolver(Generic[AggT]):
    """Resolve ids against one aggregate store."""

    def __init__(self, store: AggregateStore[AggT]):
        self.store = store

    def resolve(self, entity_id: Optional[str],
                relations: Iterable[str] = ()) -> Tuple[Optional[AggT], bool]:
        if not entity_id:
            return None, False
        aggregate = self.store.get_with_relations(entity_id, relations)
        return aggregate, aggregate is not None

    def resolve_many(self, entity_ids: Iterable[str],
                     relations: Iterable[str] = ()) -> Dict[str, AggT]:
        """One query for the whole batch; dangling ids are simply missing from the result."""
        ids = [i for i in dict.fromkeys(entity_ids) if i]
        if not ids:
            return {}
        found = {agg.id: agg for agg in self.store.get_many(ids, relations)}
        missing = len(ids) - len(found)
        if missing:
            logger.debug(f"{missing} of {len(ids)} {self.store.entity_type} reference(s) are dangling")
        return found

    def resolve_ordered(self, entity_ids: Iterable[str],
                        relations: Iterable[str] = ()) -> List[AggT]:
        ids = list(entity_ids)
        found = self.resolve_many(ids, relations)
        return [found[i] for i in dict.fromkeys(ids) if i in found]


class NetworkReferences:
    """Follow the weak edges between stations, tracks, trains and schedules."""

    def __init__(self, stations: StationStore, tracks: TrackStore,
                 trains: Optional[TrainStore] = None, schedules: Optional[ScheduleStore] = None):
        self.stations = stations
        self.tracks = tracks
        self.trains = trains
        self.schedules = schedules
        self.station_refs = ReferenceResolver(stations)
        self.track_refs = ReferenceResolver(tracks)

    def tracks_protected_by(self, signal: Signal) -> List[Track]:
        return self.track_refs.resolve_ordered(signal.protected_track_ids)

    def connected_tracks(self, station: Station) -> List[Track]:
        return self.track_refs.resolve_ordered(station.connected_track_ids)

    def platform_tracks(self, station: Station) -> Dict[str, Track]:
        """Platform id -> the track it serves, for platforms whose track exists."""
        if station.platforms is None:
            station = self.stations.require(station.id, {"platforms"})
        tracks = self.track_refs.resolve_many(p.connected_track_id for p in station.platforms)
        return {
            p.id: tracks[p.connected_track_id]
            for p in station.platforms
            if p.connected_track_id in tracks
        }

    def stop_stations(self, schedule: Schedule) -> List[Station]:
        """Stations called at, in stop order; stops at unknown stations are skipped."""
        if schedule.stop_times is None:
            if self.schedules is None:
                raise ValidationError("Schedule stop_times not loaded and no ScheduleStore to load them from")
            schedule = self.schedules.require(schedule.id, {"stop_times"})
        found = self.station_refs.resolve_many(st.station_id for st in schedule.stop_times)
        return [found[st.station_id] for st in schedule.stop_times if st.station_id in found]

    def host_tracks(self, signals: Iterable[Signal]) -> Dict[str, Track]:
        """Signal id -> owning track, in one query for all signals."""
        signals = list(signals)
        tracks = self.track_refs.resolve_many(s.track_id for s in signals if s.track_id)
        return {s.id: tracks[s.track_id] for s in signals if s.track_id in tracks}

    def dangling_track_ids(self, station: Station) -> List[str]:
        """Track ids named by the station or its loaded platforms that no longer resolve."""
        ids = list(station.connected_track_ids)
        ids.extend(p.connected_track_id for p in station.platforms or [])
        ids = list(dict.fromkeys(ids))
        found = self.track_refs.resolve_many(ids)
        return [i for i in ids if i not in found]
