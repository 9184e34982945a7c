from __future__ import annotations

import json
import sys
import threading
import time
from typing import Optional, TextIO


def _timestamp(t: float) -> str:
    ms = int((t - int(t)) * 1000)
    return time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(t)) + f'.{ms:03d}'


class JsonLogger:
    """Minimal structured logger.

    Emits one line per event (state transitions, mute/unmute actions, device
    errors) so logs are easy to grep and machine-parse. Lines are written under a
    lock because events arrive from the poller, listener and worker threads."""
    def __init__(self, enable_json: bool, verbose: bool = False, stream: Optional[TextIO] = None):
        """Create a logger.

        Args:
            enable_json: Emit JSON objects instead of human-readable lines.
            verbose: Also emit events passed to debug().
            stream: A file-like object (defaults to stdout) used for event output.
        """
        self.enable_json = enable_json
        self.verbose = bool(verbose)
        self._stream = stream
        self._lock = threading.Lock()

    def emit(self, event: str, **fields):
        """Emit an event with a name and optional key/value fields."""
        t = time.time()
        if self.enable_json:
            # ts: float seconds since epoch. ts_iso is local time with milliseconds.
            payload = {"ts": t, "ts_iso": _timestamp(t), "event": event, **fields}
            line = json.dumps(payload, sort_keys=True, default=str)
        else:
            line = f"[{_timestamp(t)}] {event}"
            if fields:
                line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        with self._lock:
            print(line, file=self._stream or sys.stdout, flush=True)

    def debug(self, event: str, **fields):
        """Emit only when verbose logging is on."""
        if self.verbose:
            self.emit(event, **fields)
