"""automute: mute the default audio output while the user is away."""

from .state import MonitoringState, MuteReason
from .coordinator import MuteCoordinator

__all__ = ["MonitoringState", "MuteReason", "MuteCoordinator"]
