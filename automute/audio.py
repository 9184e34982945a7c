"""Audio device boundary.

The coordinator only talks to an AudioDevice. Backends translate their
library/OS failures into the AudioError kinds below so the coordinator can
handle every failure the same way.
"""

from __future__ import annotations

import abc
from typing import Callable, Optional

from .events import Sink


class AudioError(Exception):
    """Base class for audio device failures.

    `status` carries the underlying OS/library status opaquely (may be None)."""
    kind = "audio_error"
    default_message = "Audio device error"

    def __init__(self, message: str = "", status=None):
        super().__init__(message or self.default_message)
        self.status = status


class NoDefaultDevice(AudioError):
    kind = "no_default_device"
    default_message = "No default audio output device found"


class PropertyUnsupported(AudioError):
    kind = "property_unsupported"
    default_message = "Audio device does not support mute control"


class DeviceQueryFailed(AudioError):
    kind = "device_query_failed"
    default_message = "Failed to read the device mute state"


class DeviceSetFailed(AudioError):
    kind = "device_set_failed"
    default_message = "Failed to set the device mute state"


class AudioDevice(abc.ABC):
    """Default output device controller.

    Implementations publish ExternalMuteChanged on every observed change of the
    default device's mute flag (including changes this process caused) and
    DefaultDeviceChanged when the default output device switches. After a
    device switch the implementation must already target the new device."""

    @abc.abstractmethod
    def default_device(self) -> Optional[str]:
        """Return an identifier for the current default output device, or None."""

    @abc.abstractmethod
    def is_muted(self) -> bool:
        """Return the default device's mute flag. Raises AudioError."""

    @abc.abstractmethod
    def set_muted(self, muted: bool) -> None:
        """Set the default device's mute flag. Raises AudioError."""

    @abc.abstractmethod
    def subscribe(self, sink: Sink) -> Callable[[], None]:
        """Register a sink for device events; returns the unsubscribe callable."""

    def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
