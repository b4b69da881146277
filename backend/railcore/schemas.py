"""
Aggregate shapes exchanged with the stores.

Owned collections default to ``None``, meaning "not loaded"; a loaded
collection with no rows is ``[]``. Schemas can be built directly from ORM rows:
relationships that were not eagerly loaded are skipped, never lazily fetched.
"""
import math
from datetime import datetime, time
from typing import List, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import inspect
from sqlalchemy.orm.state import InstanceState

from railcore.core.types import Location, Point3D, SignalType, TrainType


class RailModel(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def read_loaded_attributes(cls, data):
        state = inspect(data, raiseerr=False)
        if not isinstance(state, InstanceState):
            return data
        unloaded = state.unloaded
        return {
            name: getattr(data, name)
            for name in cls.model_fields
            if name not in unloaded and hasattr(data, name)
        }


def _not_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("must not be blank")
    return value


class AuditedModel(RailModel):
    """Store-assigned fields carried by every aggregate root."""

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: Optional[int] = None


# ============================================================
# STATION
# ============================================================

class Platform(RailModel):
    id: Optional[str] = None
    station_id: Optional[str] = None
    connected_track_id: str = Field(min_length=1)
    capacity: int = Field(gt=0)

    @field_validator("connected_track_id")
    @classmethod
    def check_not_blank(cls, value):
        return _not_blank(value)


class Gate(RailModel):
    id: Optional[str] = None
    station_id: Optional[str] = None
    capacity: int = Field(gt=0)
    processing_time: float = Field(gt=0, description="Seconds per person")
    position: Location


class Corridor(RailModel):
    id: Optional[str] = None
    station_id: Optional[str] = None
    length: float = Field(gt=0)
    width: float = Field(gt=0)


class Station(AuditedModel):
    name: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    total_capacity: int = Field(gt=0)
    location: Location
    platforms: Optional[List[Platform]] = None
    gates: Optional[List[Gate]] = None
    corridors: Optional[List[Corridor]] = None
    connected_track_ids: List[str] = Field(default_factory=list)

    @field_validator("name", "owner_id")
    @classmethod
    def check_not_blank(cls, value):
        return _not_blank(value)


# ============================================================
# TRACK
# ============================================================

class CurvePoint(RailModel):
    id: Optional[int] = None
    track_id: Optional[str] = None
    x: float
    y: float
    z: float = 0.0
    sequence_order: Optional[int] = Field(default=None, ge=0)

    def point(self) -> Point3D:
        return Point3D(x=self.x, y=self.y, z=self.z)


class Signal(RailModel):
    id: Optional[str] = None
    track_id: Optional[str] = None
    signal_type: SignalType
    position: Location
    protected_track_ids: List[str] = Field(default_factory=list)


class Track(AuditedModel):
    owner_id: str = Field(min_length=1)
    length: float = Field(gt=0)
    max_speed: float = Field(gt=0)
    start_junction_id: Optional[str] = None
    end_junction_id: Optional[str] = None
    curve: Optional[List[CurvePoint]] = None
    signals: Optional[List[Signal]] = None

    @field_validator("owner_id")
    @classmethod
    def check_not_blank(cls, value):
        return _not_blank(value)

    def junction_ids(self) -> List[str]:
        return [j for j in (self.start_junction_id, self.end_junction_id) if j]

    def curve_length(self) -> Optional[float]:
        """Length of the curve polyline, or None when the curve was not loaded."""
        if self.curve is None:
            return None
        points = sorted(self.curve, key=lambda p: p.sequence_order or 0)
        return sum(
            math.dist((a.x, a.y, a.z), (b.x, b.y, b.z))
            for a, b in zip(points, points[1:])
        )


# ============================================================
# TRAIN / SCHEDULE
# ============================================================

class StopTime(RailModel):
    id: Optional[int] = None
    schedule_id: Optional[str] = None
    station_id: str = Field(min_length=1)
    arrival_time: time
    departure_time: time
    sequence_order: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_departure_after_arrival(self):
        if self.departure_time < self.arrival_time:
            raise ValueError("departure_time must not be earlier than arrival_time")
        return self


class Schedule(AuditedModel):
    train_id: Optional[str] = None
    route_id: str = Field(min_length=1)
    stop_times: Optional[List[StopTime]] = None

    @field_validator("route_id")
    @classmethod
    def check_not_blank(cls, value):
        return _not_blank(value)


class Car(RailModel):
    id: Optional[str] = None
    train_id: Optional[str] = None
    capacity: int = Field(gt=0)
    door_count: int = Field(gt=0)


class Train(AuditedModel):
    owner_id: str = Field(min_length=1)
    train_type: TrainType
    group_id: Optional[str] = None
    total_capacity: int = Field(gt=0)
    door_count: int = Field(gt=0)
    is_player_controlled: bool = False
    assigned_route_id: Optional[str] = None
    cars: Optional[List[Car]] = None
    schedule: Optional[Schedule] = None

    @field_validator("owner_id")
    @classmethod
    def check_not_blank(cls, value):
        return _not_blank(value)

    def outranks(self, other: "Train") -> bool:
        return self.train_type.has_higher_priority_than(other.train_type)


SequencedT = TypeVar("SequencedT", CurvePoint, StopTime)


def resequence(items: Sequence[SequencedT]) -> List[SequencedT]:
    """Renumber curve points or stop times 0..n-1 in list order."""
    return [item.model_copy(update={"sequence_order": i}) for i, item in enumerate(items)]
