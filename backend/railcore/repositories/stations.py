"""
Station aggregate: platforms, gates and corridors are owned; connected track
ids are weak references kept in ``station_connected_tracks``.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from railcore.db.models import CorridorRow, GateRow, PlatformRow, StationRow, StationTrackLink
from railcore.repositories.base import AggregateStore, ChildFinder, new_id
from railcore.schemas import Gate, Platform, Station

logger = logging.getLogger(__name__)


# Filters

def named(name: str):
    return StationRow.name == name


def owned_by(owner_id: str):
    return StationRow.owner_id == owner_id


def connected_to_track(track_id: str):
    return StationRow.track_links.any(StationTrackLink.track_id == track_id)


def within_bounds(min_x: float, max_x: float, min_y: float, max_y: float):
    """2-D bounding box over location x/y, bounds inclusive."""
    return StationRow.location_x.between(min_x, max_x) & StationRow.location_y.between(min_y, max_y)


def capacity_at_least(capacity: int):
    return StationRow.total_capacity >= capacity


class StationStore(AggregateStore[Station]):
    entity_type = "Station"
    row_type = StationRow
    schema_type = Station
    relations = {
        "platforms": (StationRow.platforms,),
        "gates": (StationRow.gates,),
        "corridors": (StationRow.corridors,),
    }
    owned = {
        "platforms": (PlatformRow, "station_id"),
        "gates": (GateRow, "station_id"),
        "corridors": (CorridorRow, "station_id"),
    }

    def _scalar_values(self, station: Station) -> Dict[str, Any]:
        return {
            "name": station.name,
            "owner_id": station.owner_id,
            "total_capacity": station.total_capacity,
            "location_x": station.location.x,
            "location_y": station.location.y,
            "location_z": station.location.z,
        }

    def _write_references(self, session: Session, root_id: str,
                          station: Station, replace: bool) -> None:
        if replace:
            session.execute(
                delete(StationTrackLink)
                .where(StationTrackLink.station_id == root_id)
                .execution_options(synchronize_session=False)
            )
        session.add_all(
            StationTrackLink(station_id=root_id, position=i, track_id=track_id)
            for i, track_id in enumerate(station.connected_track_ids)
        )

    def _child_rows(self, name: str, root_id: str, station: Station,
                    now: datetime, fresh_ids: bool) -> List[Any]:
        children = getattr(station, name) or []

        def child_id(child) -> str:
            return new_id() if fresh_ids or not child.id else child.id

        if name == "platforms":
            return [
                PlatformRow(id=child_id(p), ordinal=i, station_id=root_id,
                            connected_track_id=p.connected_track_id, capacity=p.capacity)
                for i, p in enumerate(children)
            ]
        if name == "gates":
            return [
                GateRow(id=child_id(g), ordinal=i, station_id=root_id, capacity=g.capacity,
                        processing_time=g.processing_time,
                        position_x=g.position.x, position_y=g.position.y, position_z=g.position.z)
                for i, g in enumerate(children)
            ]
        return [
            CorridorRow(id=child_id(c), ordinal=i, station_id=root_id,
                        length=c.length, width=c.width)
            for i, c in enumerate(children)
        ]

    # Named finders

    def find_by_name(self, name: str) -> Optional[Station]:
        return self.find_one(named(name))

    def find_by_name_with_relations(self, name: str,
                                    relations: Optional[Iterable[str]] = None) -> Optional[Station]:
        found = self.find_with_relations(named(name), relations=relations)
        return found[0] if found else None

    def find_by_owner_id(self, owner_id: str) -> List[Station]:
        return self.find(owned_by(owner_id))

    def find_by_owner_id_with_relations(self, owner_id: str,
                                        relations: Optional[Iterable[str]] = None) -> List[Station]:
        return self.find_with_relations(owned_by(owner_id), relations=relations)

    def find_by_connected_track_id(self, track_id: str) -> List[Station]:
        return self.find(connected_to_track(track_id))

    def find_by_connected_track_id_with_relations(
            self, track_id: str, relations: Optional[Iterable[str]] = None) -> List[Station]:
        return self.find_with_relations(connected_to_track(track_id), relations=relations)

    def find_by_location_range(self, min_x: float, max_x: float,
                               min_y: float, max_y: float) -> List[Station]:
        return self.find(within_bounds(min_x, max_x, min_y, max_y))

    def find_by_location_range_with_relations(
            self, min_x: float, max_x: float, min_y: float, max_y: float,
            relations: Optional[Iterable[str]] = None) -> List[Station]:
        return self.find_with_relations(within_bounds(min_x, max_x, min_y, max_y), relations=relations)


class PlatformFinder(ChildFinder[Platform]):
    entity_type = "Platform"
    row_type = PlatformRow
    schema_type = Platform

    def _default_order(self):
        return (PlatformRow.station_id, PlatformRow.ordinal)

    def find_by_station_id(self, station_id: str) -> List[Platform]:
        return self.find(PlatformRow.station_id == station_id)

    def find_by_connected_track_id(self, track_id: str) -> List[Platform]:
        return self.find(PlatformRow.connected_track_id == track_id)

    def find_by_capacity_at_least(self, capacity: int) -> List[Platform]:
        return self.find(PlatformRow.capacity >= capacity)


class GateFinder(ChildFinder[Gate]):
    entity_type = "Gate"
    row_type = GateRow
    schema_type = Gate

    def _default_order(self):
        return (GateRow.station_id, GateRow.ordinal)

    def find_by_station_id(self, station_id: str) -> List[Gate]:
        return self.find(GateRow.station_id == station_id)

    def find_by_processing_time_at_least(self, processing_time: float) -> List[Gate]:
        return self.find(GateRow.processing_time >= processing_time)

    def find_by_capacity_between(self, min_capacity: int, max_capacity: int) -> List[Gate]:
        return self.find(GateRow.capacity.between(min_capacity, max_capacity))
