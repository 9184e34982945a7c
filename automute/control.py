from __future__ import annotations

import json
import os
import socket
import threading
from typing import Optional

from .config import SETTING_NAMES, coerce_setting
from .constants import CONTROL_DISABLE, CONTROL_ENABLE, CONTROL_SET, CONTROL_STATUS, CONTROL_TOGGLE, VERSION
from .events import EnabledChanged, SettingChanged


class ControlServer:
    """Local UNIX-socket control plane for a running coordinator.

    Each connection carries one request line and gets one JSON response line.
    Commands: status, enable, disable, toggle, set <name> <value>. State changes
    are posted to the coordinator's queue, so they apply in event order."""
    def __init__(self, coordinator, sock_path: str, logger):
        self.coordinator = coordinator
        self.sock_path = sock_path
        self.logger = logger
        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    def start(self):
        if not self.sock_path or self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="automute-control", daemon=True)
        self._thread.start()

    def wait_ready(self, timeout: float = 2.0) -> bool:
        return self._ready.wait(timeout)

    def stop(self):
        self._stop_evt.set()
        t = self._thread
        self._thread = None
        if t is not None and t is not threading.current_thread():
            t.join(timeout=2.0)

    def _bind(self) -> Optional[socket.socket]:
        path = self.sock_path
        parent = os.path.dirname(path)
        srv = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            if parent:
                os.makedirs(parent, mode=0o700, exist_ok=True)
            # Remove a stale socket left by a previous run.
            if os.path.exists(path):
                os.remove(path)
            srv.bind(path)
            os.chmod(path, 0o600)
            srv.listen(4)
            srv.settimeout(0.5)
        except OSError as e:
            self.logger.emit("control_socket_error", error=str(e), path=path)
            srv.close()
            return None
        return srv

    def _loop(self):
        srv = self._bind()
        if srv is None:
            return
        self.logger.emit("control_socket_started", path=self.sock_path)
        self._ready.set()

        try:
            while not self._stop_evt.is_set():
                try:
                    conn, _ = srv.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    self.logger.emit("control_socket_error", error=str(e), path=self.sock_path)
                    break
                with conn:
                    self._serve(conn)
        finally:
            srv.close()
            try:
                os.remove(self.sock_path)
            except OSError:
                pass

    def _serve(self, conn: socket.socket):
        try:
            conn.settimeout(2.0)
            data = b""
            while b"\n" not in data and len(data) < 4096:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                data += chunk
            cmd = data.decode("utf-8", errors="replace").strip()
            resp = self.handle_command(cmd)
        except OSError as e:
            resp = {"ok": False, "error": str(e)}
        try:
            conn.sendall((json.dumps(resp, sort_keys=True) + "\n").encode("utf-8"))
        except OSError:
            pass

    def handle_command(self, cmd: str) -> dict:
        parts = (cmd or "").strip().split()
        if not parts:
            return {"ok": False, "error": "empty command"}
        verb = parts[0].lower()

        if verb in (CONTROL_STATUS, "state"):
            return {"ok": True, "version": VERSION, **self.coordinator.snapshot()}

        if verb == CONTROL_ENABLE:
            self.coordinator.post(EnabledChanged(enabled=True))
            return {"ok": True}
        if verb == CONTROL_DISABLE:
            self.coordinator.post(EnabledChanged(enabled=False))
            return {"ok": True}
        if verb == CONTROL_TOGGLE:
            self.coordinator.toggle()
            return {"ok": True}

        if verb == CONTROL_SET:
            if len(parts) != 3:
                return {"ok": False, "error": "usage: set <name> <value>"}
            name, value = parts[1].lower().replace("-", "_"), parts[2]
            try:
                coerced = coerce_setting(name, value)
            except KeyError:
                return {"ok": False, "error": f"unknown setting: {name}", "settings": list(SETTING_NAMES)}
            except ValueError as e:
                return {"ok": False, "error": str(e)}
            self.coordinator.post(SettingChanged(name=name, value=coerced))
            return {"ok": True, "name": name, "value": coerced}

        return {"ok": False, "error": f"unknown command: {verb}"}
