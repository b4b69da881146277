"""
Train aggregate: cars and the schedule (with its stop times) are owned;
group and route ids are weak references.
"""
import logging
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from railcore.core.types import TrainType
from railcore.db.models import CarRow, ScheduleRow, TrainRow
from railcore.repositories.base import AggregateStore, ChildFinder, enum_member, new_id
from railcore.repositories.schedules import sequenced_schedule, stop_time_rows
from railcore.schemas import Car, Train

logger = logging.getLogger(__name__)


# Filters

def owned_by(owner_id: str):
    return TrainRow.owner_id == owner_id


def of_type(train_type: TrainType):
    return TrainRow.train_type == enum_member(TrainType, "train_type", train_type)


def in_group(group_id: str):
    return TrainRow.group_id == group_id


def player_controlled(flag: bool = True):
    return TrainRow.is_player_controlled.is_(flag)


def assigned_to_route(route_id: str):
    return TrainRow.assigned_route_id == route_id


def capacity_at_least(capacity: int):
    return TrainRow.total_capacity >= capacity


class TrainStore(AggregateStore[Train]):
    entity_type = "Train"
    row_type = TrainRow
    schema_type = Train
    relations = {
        "cars": (TrainRow.cars,),
        "schedule": (TrainRow.schedule, ScheduleRow.stop_times),
    }
    owned = {
        "cars": (CarRow, "train_id"),
        "schedule": (ScheduleRow, "train_id"),
    }

    def _prepare(self, train: Train, writing: FrozenSet[str]) -> Train:
        if "schedule" not in writing or train.schedule is None:
            return train
        return train.model_copy(update={"schedule": sequenced_schedule(train.schedule)})

    def _scalar_values(self, train: Train) -> Dict[str, Any]:
        return {
            "owner_id": train.owner_id,
            "train_type": train.train_type,
            "group_id": train.group_id,
            "total_capacity": train.total_capacity,
            "door_count": train.door_count,
            "is_player_controlled": train.is_player_controlled,
            "assigned_route_id": train.assigned_route_id,
        }

    def _child_rows(self, name: str, root_id: str, train: Train,
                    now: datetime, fresh_ids: bool) -> List[Any]:
        if name == "cars":
            return [
                CarRow(id=new_id() if fresh_ids or not c.id else c.id, ordinal=i, train_id=root_id,
                       capacity=c.capacity, door_count=c.door_count)
                for i, c in enumerate(train.cars or [])
            ]
        schedule = train.schedule
        if schedule is None:
            return []
        # a replaced schedule is a new row: fresh id, version restarts at 1
        return [ScheduleRow(
            id=new_id() if fresh_ids or not schedule.id else schedule.id,
            created_at=now, updated_at=now, version=1,
            train_id=root_id,
            route_id=schedule.route_id,
            stop_times=stop_time_rows(schedule.stop_times),
        )]

    # Named finders

    def find_by_owner_id(self, owner_id: str) -> List[Train]:
        return self.find(owned_by(owner_id))

    def find_by_owner_id_with_relations(self, owner_id: str,
                                        relations: Optional[Iterable[str]] = None) -> List[Train]:
        return self.find_with_relations(owned_by(owner_id), relations=relations)

    def find_by_train_type(self, train_type: TrainType) -> List[Train]:
        return self.find(of_type(train_type))

    def find_by_train_type_with_relations(self, train_type: TrainType,
                                          relations: Optional[Iterable[str]] = None) -> List[Train]:
        return self.find_with_relations(of_type(train_type), relations=relations)

    def find_by_group_id(self, group_id: str) -> List[Train]:
        return self.find(in_group(group_id))

    def find_by_group_id_with_relations(self, group_id: str,
                                        relations: Optional[Iterable[str]] = None) -> List[Train]:
        return self.find_with_relations(in_group(group_id), relations=relations)

    def find_by_player_controlled(self, flag: bool = True) -> List[Train]:
        return self.find(player_controlled(flag))

    def find_by_assigned_route_id(self, route_id: str) -> List[Train]:
        return self.find(assigned_to_route(route_id))

    def find_by_assigned_route_id_with_relations(self, route_id: str,
                                                 relations: Optional[Iterable[str]] = None) -> List[Train]:
        return self.find_with_relations(assigned_to_route(route_id), relations=relations)

    def find_by_total_capacity_at_least(self, capacity: int) -> List[Train]:
        return self.find(capacity_at_least(capacity))

    def find_by_owner_id_and_player_controlled(self, owner_id: str, flag: bool = True) -> List[Train]:
        return self.find(owned_by(owner_id), player_controlled(flag))


class CarFinder(ChildFinder[Car]):
    entity_type = "Car"
    row_type = CarRow
    schema_type = Car

    def _default_order(self):
        return (CarRow.train_id, CarRow.ordinal)

    def find_by_train_id(self, train_id: str) -> List[Car]:
        return self.find(CarRow.train_id == train_id)

    def find_by_capacity_at_least(self, capacity: int) -> List[Car]:
        return self.find(CarRow.capacity >= capacity)

    def find_by_door_count(self, door_count: int) -> List[Car]:
        return self.find(CarRow.door_count == door_count)
