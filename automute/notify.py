from __future__ import annotations

import threading
from typing import Optional, Set

import requests

PUSHOVER_URL = "https://api.pushover.net/1/messages.json"


class Notifier:
    """Optional Pushover notifications for audio device failures.

    A failure kind is reported once; it can be reported again only after a
    device call succeeds (clear()). Sending happens on a daemon thread and
    never raises."""
    def __init__(self, enabled: bool, pushover_token: Optional[str], pushover_user: Optional[str], timeout_s: float = 5.0):
        self.enabled = enabled and bool(pushover_token and pushover_user)
        self._token = pushover_token
        self._user = pushover_user
        self._timeout = timeout_s
        self._reported: Set[str] = set()
        self._lock = threading.Lock()

    def send(self, title: str, message: str, priority: int = 0):
        if not self.enabled:
            return
        threading.Thread(target=self._send_sync, args=(title, message, priority), daemon=True).start()

    def device_error(self, kind: str, message: str):
        with self._lock:
            if kind in self._reported:
                return
            self._reported.add(kind)
        self.send("automute", message, priority=0)

    def clear(self):
        with self._lock:
            self._reported.clear()

    def _send_sync(self, title: str, message: str, priority: int):
        try:
            requests.post(
                PUSHOVER_URL,
                data={
                    "token": self._token,
                    "user": self._user,
                    "title": title,
                    "message": message,
                    "priority": priority,
                },
                timeout=self._timeout,
            )
        except Exception:
            pass
