"""
Value types shared by every aggregate: coordinates and the railway enums.

Enum members carry their metadata (priority, capability flags) as explicit
fields; comparisons are numeric on those fields, never on declaration order.
"""
from enum import Enum, Flag, auto

from pydantic import BaseModel, ConfigDict


class Location(BaseModel):
    """A point in game space (x/y on the map plane, z elevation)."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float = 0.0


class Point3D(Location):
    pass


class TrainType(str, Enum):
    """Service class of a train. Higher priority outranks lower."""

    def __new__(cls, value: str, display_name: str, priority: int):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.display_name = display_name
        obj.priority = priority
        return obj

    LOCAL = ("LOCAL", "Local", 1)
    RAPID = ("RAPID", "Rapid", 2)
    EXPRESS = ("EXPRESS", "Express", 3)
    LIMITED_EXPRESS = ("LIMITED_EXPRESS", "Limited Express", 4)

    def has_higher_priority_than(self, other: "TrainType") -> bool:
        return self.priority > other.priority


class SignalCapability(Flag):
    NONE = 0
    MAIN_LINE = auto()
    EMERGENCY_CONTROL = auto()
    YARD = auto()


class SignalType(str, Enum):
    def __new__(cls, value: str, display_name: str, description: str,
                priority: int, capabilities: SignalCapability):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.display_name = display_name
        obj.description = description
        obj.priority = priority
        obj.capabilities = capabilities
        return obj

    BLOCK = ("BLOCK", "Block signal", "Basic section control",
             2, SignalCapability.MAIN_LINE)
    PATH = ("PATH", "Path signal", "Route control at junctions",
            3, SignalCapability.MAIN_LINE)
    ABSOLUTE = ("ABSOLUTE", "Absolute signal", "Absolute control for emergencies and critical sections",
                4, SignalCapability.MAIN_LINE | SignalCapability.EMERGENCY_CONTROL)
    SHUNTING = ("SHUNTING", "Shunting signal", "Yard and in-station shunting moves",
                1, SignalCapability.YARD)

    def is_main_line_signal(self) -> bool:
        return bool(self.capabilities & SignalCapability.MAIN_LINE)

    def has_emergency_control(self) -> bool:
        return bool(self.capabilities & SignalCapability.EMERGENCY_CONTROL)

    def has_higher_priority_than(self, other: "SignalType") -> bool:
        return self.priority > other.priority


class JunctionType(str, Enum):
    def __new__(cls, value: str, display_name: str, splits: bool, merges: bool):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.display_name = display_name
        obj._splits = splits
        obj._merges = merges
        return obj

    MERGE = ("MERGE", "Merge", False, True)
    SPLIT = ("SPLIT", "Split", True, False)
    CROSS = ("CROSS", "Crossing", True, True)
    TERMINAL = ("TERMINAL", "Terminal", False, False)

    def can_split(self) -> bool:
        return self._splits

    def can_merge(self) -> bool:
        return self._merges


class TrainOperationState(str, Enum):
    STOPPED = "STOPPED"
    MOVING = "MOVING"
    BOARDING = "BOARDING"
    EMERGENCY = "EMERGENCY"
    DEADHEAD = "DEADHEAD"  # running without passengers
    AWAITING = "AWAITING"  # held for a higher-priority train

    def can_move(self) -> bool:
        return self in (TrainOperationState.MOVING, TrainOperationState.DEADHEAD)

    def can_board(self) -> bool:
        return self is TrainOperationState.BOARDING

    def is_emergency(self) -> bool:
        return self is TrainOperationState.EMERGENCY
