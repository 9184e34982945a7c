"""Typed events delivered to the MuteCoordinator.

Sources (idle poller, lock watcher, audio listener, control socket) never touch
coordinator state directly. They publish these value objects to their
subscribers, and the coordinator queues them for its single worker thread.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, List


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class IdleTimeUpdated(Event):
    seconds: float


@dataclass(frozen=True)
class ThresholdReached(Event):
    pass


@dataclass(frozen=True)
class ActivityResumed(Event):
    pass


@dataclass(frozen=True)
class Locked(Event):
    pass


@dataclass(frozen=True)
class Unlocked(Event):
    pass


@dataclass(frozen=True)
class ExternalMuteChanged(Event):
    muted: bool


@dataclass(frozen=True)
class DefaultDeviceChanged(Event):
    device: Any = None


@dataclass(frozen=True)
class EnabledChanged(Event):
    enabled: bool


@dataclass(frozen=True)
class ToggleRequested(Event):
    """Flip is_enabled, resolved against the setting at handling time."""


@dataclass(frozen=True)
class SettingChanged(Event):
    name: str
    value: Any


Sink = Callable[[Event], None]


class Subscribers:
    """Thread-safe fan-out of events to registered sinks.

    subscribe() returns the matching unsubscribe callable so owners can tear
    down exactly what they registered."""
    def __init__(self):
        self._sinks: List[Sink] = []
        self._lock = threading.Lock()

    def subscribe(self, sink: Sink) -> Callable[[], None]:
        with self._lock:
            self._sinks.append(sink)

        def unsubscribe():
            with self._lock:
                if sink in self._sinks:
                    self._sinks.remove(sink)

        return unsubscribe

    def emit(self, event: Event):
        with self._lock:
            sinks = list(self._sinks)
        for sink in sinks:
            sink(event)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sinks)
