from railcore.repositories.base import AggregateStore, ChildFinder
from railcore.repositories.schedules import ScheduleStore, StopTimeFinder
from railcore.repositories.stations import GateFinder, PlatformFinder, StationStore
from railcore.repositories.tracks import SignalFinder, TrackStore
from railcore.repositories.trains import CarFinder, TrainStore

__all__ = [
    "AggregateStore",
    "ChildFinder",
    "StationStore",
    "PlatformFinder",
    "GateFinder",
    "TrackStore",
    "SignalFinder",
    "TrainStore",
    "CarFinder",
    "ScheduleStore",
    "StopTimeFinder",
]
