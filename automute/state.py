from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .util import format_mm_ss


class MuteReason(enum.Enum):
    """Which trigger caused the current auto-mute.

    Only the reversal of the same trigger is allowed to auto-unmute."""
    INACTIVITY = "inactivity"
    SCREEN_LOCK = "screen_lock"

    @property
    def display_name(self) -> str:
        if self is MuteReason.INACTIVITY:
            return "Inactivity"
        return "Screen Lock"


class StatusColor(enum.Enum):
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"
    GRAY = "gray"


class MonitoringState:
    """Base of the published monitoring state.

    Exactly one variant is current at a time. Variants are immutable value
    objects so they can be handed to other threads (control socket, listeners)
    without copying."""
    name = ""
    status_color = StatusColor.GRAY
    icon_name = ""

    @property
    def status_text(self) -> str:
        return self.name

    def to_dict(self) -> dict:
        return {"name": self.name, "status": self.status_text, "color": self.status_color.value}


@dataclass(frozen=True)
class Disabled(MonitoringState):
    name = "Disabled"
    status_color = StatusColor.GRAY
    icon_name = "speaker.slash"


@dataclass(frozen=True)
class Active(MonitoringState):
    name = "Active"
    status_color = StatusColor.GREEN
    icon_name = "speaker.wave.2.fill"


@dataclass(frozen=True)
class Idle(MonitoringState):
    elapsed_seconds: float = 0.0

    name = "Idle"
    status_color = StatusColor.ORANGE
    icon_name = "speaker.wave.2"

    @property
    def status_text(self) -> str:
        return f"Idle ({format_mm_ss(self.elapsed_seconds)})"

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["elapsed_seconds"] = round(self.elapsed_seconds, 3)
        return d


@dataclass(frozen=True)
class Muted(MonitoringState):
    reason: MuteReason = MuteReason.INACTIVITY

    name = "Muted"
    status_color = StatusColor.RED
    icon_name = "speaker.slash.fill"

    @property
    def status_text(self) -> str:
        return f"Muted ({self.reason.display_name})"

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["reason"] = self.reason.value
        return d


@dataclass(frozen=True)
class ScreenLocked(MonitoringState):
    name = "Screen Locked"
    status_color = StatusColor.RED
    icon_name = "lock.fill"


@dataclass
class CoordinatorMemory:
    """Mutable coordination history owned by the MuteCoordinator.

    Only the coordinator's event handlers write to it. It is never persisted
    and is reset whenever monitoring is disabled or re-enabled."""
    auto_mute_reason: Optional[MuteReason] = None
    was_manually_muted_before_auto_mute: bool = False
    is_screen_locked: bool = False

    def clear_auto_mute(self):
        """Forget that this system owns the current mute."""
        self.auto_mute_reason = None
        self.was_manually_muted_before_auto_mute = False

    def reset(self):
        self.clear_auto_mute()
        self.is_screen_locked = False
