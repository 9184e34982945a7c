from __future__ import annotations

import abc
import shlex
import subprocess
import threading
from typing import Callable, Optional, Sequence, Union

from .constants import POLL_INTERVAL_S
from .events import ActivityResumed, IdleTimeUpdated, Sink, Subscribers, ThresholdReached


class IdleClockError(Exception):
    """Raised when the idle time cannot be sampled."""


class IdleClock(abc.ABC):
    """Source of seconds since the last keyboard/mouse input."""

    @abc.abstractmethod
    def seconds_since_last_input(self) -> float:
        """Return seconds since the last input (>= 0). Raises IdleClockError."""


class CommandIdleClock(IdleClock):
    """Idle clock that runs a command printing milliseconds since last input.

    `xprintidle` (X11) is the default; any command with the same output contract
    works, e.g. a small wrapper around a compositor's idle protocol."""
    def __init__(self, command: Union[str, Sequence[str]] = "xprintidle", timeout_s: float = 2.0):
        self.argv = shlex.split(command) if isinstance(command, str) else list(command)
        self.timeout_s = float(timeout_s)

    def seconds_since_last_input(self) -> float:
        try:
            out = subprocess.run(
                self.argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                check=True,
            ).stdout
        except (OSError, subprocess.SubprocessError) as e:
            raise IdleClockError(f"{self.argv[0]}: {e}") from e
        try:
            ms = float(out.strip())
        except ValueError as e:
            raise IdleClockError(f"{self.argv[0]}: unexpected output {out.strip()!r}") from e
        return max(0.0, ms / 1000.0)


class InactivityMonitor:
    """Polls an IdleClock and turns threshold crossings into edge events.

    Every tick publishes IdleTimeUpdated for display. ThresholdReached fires once
    when an idle episode begins and ActivityResumed once when it ends; nothing
    fires on ticks in between."""
    def __init__(self, clock: IdleClock, threshold_s: float, logger, interval_s: float = POLL_INTERVAL_S):
        self.clock = clock
        self.logger = logger
        self.interval_s = float(interval_s)
        self._threshold_s = float(threshold_s)
        self._was_idle = False
        self._clock_failing = False
        self._subscribers = Subscribers()
        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def threshold_s(self) -> float:
        return self._threshold_s

    @property
    def was_idle(self) -> bool:
        return self._was_idle

    @property
    def running(self) -> bool:
        return self._thread is not None

    def subscribe(self, sink: Sink) -> Callable[[], None]:
        return self._subscribers.subscribe(sink)

    def update_threshold(self, seconds: float):
        """New threshold applies from the next tick."""
        self._threshold_s = float(seconds)

    def start(self):
        if self._thread is not None:
            return
        self._stop_evt = threading.Event()
        self._thread = threading.Thread(target=self._loop, args=(self._stop_evt,),
                                        name="automute-idle", daemon=True)
        self._thread.start()

    def stop(self):
        """Cancel polling and forget the current episode. Idempotent."""
        t = self._thread
        self._thread = None
        self._stop_evt.set()
        if t is not None and t is not threading.current_thread():
            t.join(timeout=self.interval_s * 2)
        self._was_idle = False
        self._clock_failing = False

    def _loop(self, stop_evt: threading.Event):
        while not stop_evt.wait(self.interval_s):
            self.tick()

    def tick(self):
        """Sample the clock once and publish the resulting events."""
        try:
            t = self.clock.seconds_since_last_input()
        except IdleClockError as e:
            if not self._clock_failing:
                self._clock_failing = True
                self.logger.emit("idle_clock_error", error=str(e))
            return
        if self._clock_failing:
            self._clock_failing = False
            self.logger.emit("idle_clock_recovered")

        self._subscribers.emit(IdleTimeUpdated(seconds=t))

        if t >= self._threshold_s:
            if not self._was_idle:
                self._was_idle = True
                self._subscribers.emit(ThresholdReached())
        elif self._was_idle:
            self._was_idle = False
            self._subscribers.emit(ActivityResumed())
