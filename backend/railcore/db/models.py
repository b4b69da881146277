# backend/railcore/db/models.py
"""
Relational layout of the railway aggregates.

Two kinds of references live here and are kept apart:

* owned children (platforms, gates, corridors, curve points, signals, cars,
  schedule, stop times) hang off their root through a NOT NULL foreign key
  with ON DELETE CASCADE. Their relationships are ``lazy="raise"``: they are
  only ever populated by an explicit eager loader.
* weak references (connected tracks, protected tracks, junction/route/station
  ids) are plain strings. Lists of them are stored in side tables keyed by the
  owner, with no foreign key on the referenced side.
"""
from datetime import datetime, time
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from railcore.core.types import Location, SignalType, TrainType

ID_LENGTH = 64

# Deletes go through Core statements; ON DELETE CASCADE removes the children
OWNED = dict(passive_deletes=True, lazy="raise")


class Base(DeclarativeBase):
    pass


class AuditMixin:
    """Audit columns shared by every aggregate root."""

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


def _owner_fk(target: str) -> ForeignKey:
    return ForeignKey(target, ondelete="CASCADE")


# ============================================================
# STATION
# ============================================================

class StationRow(AuditMixin, Base):
    __tablename__ = "stations"
    __table_args__ = (
        CheckConstraint("total_capacity > 0", name="ck_station_capacity_positive"),
        Index("idx_station_owner", "owner_id"),
        Index("idx_station_location", "location_x", "location_y"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    owner_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    location_x: Mapped[float] = mapped_column(Float, nullable=False)
    location_y: Mapped[float] = mapped_column(Float, nullable=False)
    location_z: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    platforms: Mapped[List["PlatformRow"]] = relationship(
        back_populates="station", order_by="PlatformRow.ordinal", **OWNED)
    gates: Mapped[List["GateRow"]] = relationship(
        back_populates="station", order_by="GateRow.ordinal", **OWNED)
    corridors: Mapped[List["CorridorRow"]] = relationship(
        back_populates="station", order_by="CorridorRow.ordinal", **OWNED)
    track_links: Mapped[List["StationTrackLink"]] = relationship(
        order_by="StationTrackLink.position",
        passive_deletes=True, lazy="selectin")

    @property
    def location(self) -> Location:
        return Location(x=self.location_x, y=self.location_y, z=self.location_z)

    @property
    def connected_track_ids(self) -> List[str]:
        return [link.track_id for link in self.track_links]


class PlatformRow(Base):
    __tablename__ = "platforms"
    __table_args__ = (CheckConstraint("capacity > 0", name="ck_platform_capacity_positive"),)

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    # index within the owner's list, preserves submitted order
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    station_id: Mapped[str] = mapped_column(_owner_fk("stations.id"), nullable=False, index=True)
    connected_track_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    station: Mapped[StationRow] = relationship(back_populates="platforms", lazy="raise")


class GateRow(Base):
    __tablename__ = "gates"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_gate_capacity_positive"),
        CheckConstraint("processing_time > 0", name="ck_gate_processing_time_positive"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    # index within the owner's list, preserves submitted order
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    station_id: Mapped[str] = mapped_column(_owner_fk("stations.id"), nullable=False, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    processing_time: Mapped[float] = mapped_column(Float, nullable=False)
    position_x: Mapped[float] = mapped_column(Float, nullable=False)
    position_y: Mapped[float] = mapped_column(Float, nullable=False)
    position_z: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    station: Mapped[StationRow] = relationship(back_populates="gates", lazy="raise")

    @property
    def position(self) -> Location:
        return Location(x=self.position_x, y=self.position_y, z=self.position_z)


class CorridorRow(Base):
    __tablename__ = "corridors"
    __table_args__ = (
        CheckConstraint("length > 0", name="ck_corridor_length_positive"),
        CheckConstraint("width > 0", name="ck_corridor_width_positive"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    # index within the owner's list, preserves submitted order
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    station_id: Mapped[str] = mapped_column(_owner_fk("stations.id"), nullable=False, index=True)
    length: Mapped[float] = mapped_column(Float, nullable=False)
    width: Mapped[float] = mapped_column(Float, nullable=False)

    station: Mapped[StationRow] = relationship(back_populates="corridors", lazy="raise")


class StationTrackLink(Base):
    __tablename__ = "station_connected_tracks"

    station_id: Mapped[str] = mapped_column(_owner_fk("stations.id"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    # No foreign key: the track may be deleted independently
    track_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False, index=True)


# ============================================================
# TRACK
# ============================================================

class TrackRow(AuditMixin, Base):
    __tablename__ = "tracks"
    __table_args__ = (
        CheckConstraint("length > 0", name="ck_track_length_positive"),
        CheckConstraint("max_speed > 0", name="ck_track_max_speed_positive"),
        Index("idx_track_owner", "owner_id"),
        Index("idx_track_start_junction", "start_junction_id"),
        Index("idx_track_end_junction", "end_junction_id"),
    )

    owner_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    length: Mapped[float] = mapped_column(Float, nullable=False)
    max_speed: Mapped[float] = mapped_column(Float, nullable=False)
    start_junction_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH), nullable=True)
    end_junction_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH), nullable=True)

    curve: Mapped[List["CurvePointRow"]] = relationship(
        back_populates="track", order_by="CurvePointRow.sequence_order", **OWNED)
    signals: Mapped[List["SignalRow"]] = relationship(
        back_populates="track", order_by="SignalRow.ordinal", **OWNED)


class CurvePointRow(Base):
    __tablename__ = "track_curve_points"
    __table_args__ = (
        UniqueConstraint("track_id", "sequence_order", name="uq_curve_point_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[str] = mapped_column(_owner_fk("tracks.id"), nullable=False, index=True)
    x: Mapped[float] = mapped_column(Float, nullable=False)
    y: Mapped[float] = mapped_column(Float, nullable=False)
    z: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    track: Mapped[TrackRow] = relationship(back_populates="curve", lazy="raise")


class SignalRow(Base):
    __tablename__ = "signals"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    # index within the owner's list, preserves submitted order
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    track_id: Mapped[str] = mapped_column(_owner_fk("tracks.id"), nullable=False, index=True)
    signal_type: Mapped[SignalType] = mapped_column(
        SAEnum(SignalType, native_enum=False, length=32), nullable=False, index=True)
    position_x: Mapped[float] = mapped_column(Float, nullable=False)
    position_y: Mapped[float] = mapped_column(Float, nullable=False)
    position_z: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    track: Mapped[TrackRow] = relationship(back_populates="signals", lazy="raise")
    protected_links: Mapped[List["SignalTrackLink"]] = relationship(
        order_by="SignalTrackLink.position",
        passive_deletes=True, lazy="selectin")

    @property
    def position(self) -> Location:
        return Location(x=self.position_x, y=self.position_y, z=self.position_z)

    @property
    def protected_track_ids(self) -> List[str]:
        return [link.track_id for link in self.protected_links]


class SignalTrackLink(Base):
    __tablename__ = "signal_protected_tracks"

    signal_id: Mapped[str] = mapped_column(_owner_fk("signals.id"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Not validated: a signal may protect a track that does not exist (yet)
    track_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False, index=True)


# ============================================================
# TRAIN / SCHEDULE
# ============================================================

class TrainRow(AuditMixin, Base):
    __tablename__ = "trains"
    __table_args__ = (
        CheckConstraint("total_capacity > 0", name="ck_train_capacity_positive"),
        CheckConstraint("door_count > 0", name="ck_train_door_count_positive"),
        Index("idx_train_owner", "owner_id"),
        Index("idx_train_type", "train_type"),
        Index("idx_train_route", "assigned_route_id"),
        Index("idx_train_group", "group_id"),
        Index("idx_train_player_controlled", "is_player_controlled"),
    )

    owner_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    train_type: Mapped[TrainType] = mapped_column(
        SAEnum(TrainType, native_enum=False, length=32), nullable=False)
    group_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH), nullable=True)
    total_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    door_count: Mapped[int] = mapped_column(Integer, nullable=False)
    is_player_controlled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_route_id: Mapped[Optional[str]] = mapped_column(String(ID_LENGTH), nullable=True)

    cars: Mapped[List["CarRow"]] = relationship(
        back_populates="train", order_by="CarRow.ordinal", **OWNED)
    schedule: Mapped[Optional["ScheduleRow"]] = relationship(
        back_populates="train", uselist=False, **OWNED)


class CarRow(Base):
    __tablename__ = "cars"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_car_capacity_positive"),
        CheckConstraint("door_count > 0", name="ck_car_door_count_positive"),
    )

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    # index within the owner's list, preserves submitted order
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    train_id: Mapped[str] = mapped_column(_owner_fk("trains.id"), nullable=False, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    door_count: Mapped[int] = mapped_column(Integer, nullable=False)

    train: Mapped[TrainRow] = relationship(back_populates="cars", lazy="raise")


class ScheduleRow(AuditMixin, Base):
    __tablename__ = "schedules"

    train_id: Mapped[str] = mapped_column(
        _owner_fk("trains.id"), nullable=False, unique=True, index=True)
    route_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False, index=True)

    train: Mapped[TrainRow] = relationship(back_populates="schedule", lazy="raise")
    stop_times: Mapped[List["StopTimeRow"]] = relationship(
        back_populates="schedule", order_by="StopTimeRow.sequence_order", **OWNED)


class StopTimeRow(Base):
    __tablename__ = "stop_times"
    __table_args__ = (
        UniqueConstraint("schedule_id", "sequence_order", name="uq_stop_time_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[str] = mapped_column(_owner_fk("schedules.id"), nullable=False, index=True)
    station_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False, index=True)
    arrival_time: Mapped[time] = mapped_column(Time, nullable=False)
    departure_time: Mapped[time] = mapped_column(Time, nullable=False)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    schedule: Mapped[ScheduleRow] = relationship(back_populates="stop_times", lazy="raise")
