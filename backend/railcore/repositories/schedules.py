"""
Schedule aggregate: owned stop times ordered by ``sequence_order``.

A schedule belongs to exactly one train (1:1, cascaded with the train); the
train must exist before a schedule can be created for it on its own.
"""
import logging
from datetime import datetime, time
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from railcore.core.errors import IntegrityError, NotFoundError, ValidationError
from railcore.db.models import ScheduleRow, StopTimeRow, TrainRow
from railcore.repositories.base import AggregateStore, ChildFinder, sequenced
from railcore.schemas import Schedule, StopTime

logger = logging.getLogger(__name__)


def stop_time_rows(stop_times: Optional[Iterable[StopTime]], schedule_id: Optional[str] = None) -> List[StopTimeRow]:
    return [
        StopTimeRow(
            schedule_id=schedule_id,
            station_id=st.station_id,
            arrival_time=st.arrival_time,
            departure_time=st.departure_time,
            sequence_order=st.sequence_order,
        )
        for st in stop_times or []
    ]


def sequenced_schedule(schedule: Schedule) -> Schedule:
    if schedule.stop_times is None:
        return schedule
    return schedule.model_copy(update={
        "stop_times": sequenced("Schedule", "stop_times", schedule.stop_times, contiguous=False),
    })


# Filters

def for_route(route_id: str):
    return ScheduleRow.route_id == route_id


def for_train(train_id: str):
    return ScheduleRow.train_id == train_id


def calls_at(station_id: str):
    return ScheduleRow.stop_times.any(StopTimeRow.station_id == station_id)


class ScheduleStore(AggregateStore[Schedule]):
    entity_type = "Schedule"
    row_type = ScheduleRow
    schema_type = Schedule
    relations = {"stop_times": (ScheduleRow.stop_times,)}
    owned = {"stop_times": (StopTimeRow, "schedule_id")}

    def _prepare(self, schedule: Schedule, writing: FrozenSet[str]) -> Schedule:
        if "stop_times" not in writing:
            return schedule
        return sequenced_schedule(schedule)

    def _before_create(self, session: Session, schedule: Schedule) -> None:
        if not schedule.train_id:
            raise ValidationError.for_field("train_id", schedule.train_id, "a schedule must belong to a train")
        if session.get(TrainRow, schedule.train_id) is None:
            raise NotFoundError("Train", schedule.train_id)
        if session.scalar(select(exists().where(for_train(schedule.train_id)))):
            raise IntegrityError(f"Train {schedule.train_id} already has a schedule")

    def _scalar_values(self, schedule: Schedule) -> Dict[str, Any]:
        # train_id is fixed at creation; the owning train never changes
        return {"route_id": schedule.route_id}

    def _child_rows(self, name: str, root_id: str, schedule: Schedule,
                    now: datetime, fresh_ids: bool) -> List[Any]:
        return stop_time_rows(schedule.stop_times, schedule_id=root_id)

    def _create_values(self, schedule: Schedule) -> Dict[str, Any]:
        return {"train_id": schedule.train_id}

    def find_by_route_id(self, route_id: str) -> List[Schedule]:
        return self.find(for_route(route_id))

    def find_by_train_id(self, train_id: str,
                         relations: Optional[Iterable[str]] = None) -> Optional[Schedule]:
        found = self.find_with_relations(for_train(train_id), relations=relations)
        return found[0] if found else None

    def find_by_station_id(self, station_id: str) -> List[Schedule]:
        return self.find(calls_at(station_id))


class StopTimeFinder(ChildFinder[StopTime]):
    entity_type = "StopTime"
    row_type = StopTimeRow
    schema_type = StopTime

    def _default_order(self):
        return (StopTimeRow.schedule_id, StopTimeRow.sequence_order)

    def find_by_schedule_id(self, schedule_id: str) -> List[StopTime]:
        return self.find(StopTimeRow.schedule_id == schedule_id)

    def find_by_station_id(self, station_id: str) -> List[StopTime]:
        return self.find(StopTimeRow.station_id == station_id)

    def find_by_arrival_time_after(self, arrival_time: time) -> List[StopTime]:
        return self.find(StopTimeRow.arrival_time > arrival_time)

    def find_by_departure_time_before(self, departure_time: time) -> List[StopTime]:
        return self.find(StopTimeRow.departure_time < departure_time)

    def find_by_schedule_id_and_station_id(self, schedule_id: str, station_id: str) -> List[StopTime]:
        return self.find(StopTimeRow.schedule_id == schedule_id, StopTimeRow.station_id == station_id)
