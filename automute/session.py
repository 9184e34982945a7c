from __future__ import annotations

import abc
import os
import subprocess
import threading
from typing import Callable, Optional

from .constants import POLL_INTERVAL_S
from .events import Locked, Sink, Subscribers, Unlocked


class SessionLockError(Exception):
    """Raised when the session lock state cannot be read."""


class SessionLock(abc.ABC):
    """Lock/unlock notifier.

    Publishes Locked/Unlocked at most once per real transition. start() and stop()
    are idempotent."""
    def __init__(self):
        self._subscribers = Subscribers()
        self.is_locked = False

    def subscribe(self, sink: Sink) -> Callable[[], None]:
        return self._subscribers.subscribe(sink)

    @abc.abstractmethod
    def start(self):
        """Begin observing the session."""

    @abc.abstractmethod
    def stop(self):
        """Stop observing the session."""

    def _publish(self, locked: bool):
        if locked == self.is_locked:
            return
        self.is_locked = locked
        self._subscribers.emit(Locked() if locked else Unlocked())


def read_locked_hint(session_id: str, timeout_s: float = 2.0) -> bool:
    """Return systemd-logind's LockedHint for a session."""
    try:
        out = subprocess.run(
            ["loginctl", "show-session", session_id, "--property=LockedHint", "--value"],
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=True,
        ).stdout.strip().lower()
    except (OSError, subprocess.SubprocessError) as e:
        raise SessionLockError(f"loginctl: {e}") from e
    if out in ("yes", "true", "1"):
        return True
    if out in ("no", "false", "0"):
        return False
    raise SessionLockError(f"loginctl: unexpected LockedHint {out!r}")


class LoginctlSessionLock(SessionLock):
    """SessionLock that polls logind's LockedHint for the current session.

    Desktop lockers (GNOME, KDE, light-locker, loginctl lock-session) set the
    hint. The first sample after start() only establishes the baseline."""
    def __init__(self, logger, session_id: Optional[str] = None, interval_s: float = POLL_INTERVAL_S):
        super().__init__()
        self.logger = logger
        self.session_id = session_id or os.environ.get("XDG_SESSION_ID") or "auto"
        self.interval_s = float(interval_s)
        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._baseline = False
        self._failing = False

    def start(self):
        if self._thread is not None:
            return
        self._baseline = False
        self._stop_evt = threading.Event()
        self._thread = threading.Thread(target=self._loop, args=(self._stop_evt,),
                                        name="automute-lock", daemon=True)
        self._thread.start()

    def stop(self):
        t = self._thread
        self._thread = None
        self._stop_evt.set()
        if t is not None and t is not threading.current_thread():
            t.join(timeout=self.interval_s * 2)

    def _loop(self, stop_evt: threading.Event):
        self.poll()
        while not stop_evt.wait(self.interval_s):
            self.poll()

    def poll(self):
        """Read the hint once and publish a transition if it changed."""
        try:
            locked = read_locked_hint(self.session_id)
        except SessionLockError as e:
            if not self._failing:
                self._failing = True
                self.logger.emit("lock_error", error=str(e), session=self.session_id)
            return
        self._failing = False

        if not self._baseline:
            self._baseline = True
            self.is_locked = locked
            return
        self._publish(locked)
