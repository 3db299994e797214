"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class SessionStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    ERROR = "error"


class Action(str, Enum):
    START = "start"
    STOP = "stop"
    TOGGLE_ACTIVATED = "toggle_activated"


class RecordingMode(str, Enum):
    HOLD = "hold"
    TOGGLE = "toggle"


@dataclass(frozen=True)
class GestureEvent:
    pressed: bool
    timestamp: float


@dataclass(frozen=True)
class ToggleState:
    """Hotkey bookkeeping that only exists while a recording is live."""

    press_instant: Optional[float] = None
    active: bool = False


@dataclass(frozen=True)
class Idle:
    status = SessionStatus.IDLE


@dataclass(frozen=True)
class Recording:
    session_id: int
    toggle: ToggleState = field(default_factory=ToggleState)
    status = SessionStatus.RECORDING


@dataclass(frozen=True)
class Processing:
    session_id: int
    status = SessionStatus.PROCESSING


@dataclass(frozen=True)
class Failed:
    message: str
    status = SessionStatus.ERROR


SessionState = Union[Idle, Recording, Processing, Failed]


@dataclass(frozen=True)
class SessionFlags:
    toggle_shortcut_held: bool
    toggle_active: bool
    press_instant: Optional[float]


@dataclass(frozen=True)
class ReplacementRule:
    source: str
    target: str


@dataclass(frozen=True)
class DeviceConfig:
    sample_rate: int
    channels: int
    dtype: str = "float32"
    device: Optional[int] = None


@dataclass
class InjectionResult:
    success: bool
    reason: str
    clipboard_restored: bool
