#!/usr/bin/env python3
"""Local control client for automute.

Talks to a running automute daemon over its local UNIX socket.

Commands:
  status | enable | disable | toggle | set NAME VALUE | test-notify

Socket path:
  - default: $XDG_RUNTIME_DIR/automute/automute.sock
  - override: --socket PATH or AUTOMUTE_SOCKET env var
"""

from __future__ import annotations

import argparse
import json
import os
import socket
import sys
from typing import List, Optional

import requests

from automute.config import default_socket_path, get_notifier_config
from automute.notify import PUSHOVER_URL


def _send(sock_path: str, cmd: str) -> dict:
    s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        s.settimeout(5.0)
        s.connect(sock_path)
        s.sendall((cmd.strip() + "\n").encode("utf-8"))
        data = b""
        while b"\n" not in data and len(data) < 65536:
            chunk = s.recv(4096)
            if not chunk:
                break
            data += chunk
    finally:
        s.close()
    line = data.decode("utf-8", errors="replace").strip()
    if not line:
        return {"ok": False, "error": "empty response"}
    try:
        return json.loads(line)
    except ValueError:
        return {"ok": False, "error": "non-json response", "raw": line}


def _test_notify() -> int:
    cfg = get_notifier_config()
    if not cfg["pushover_token"] or not cfg["pushover_user"]:
        print("error: PUSHOVER_TOKEN and PUSHOVER_USER must be set", file=sys.stderr)
        return 2
    try:
        resp = requests.post(
            PUSHOVER_URL,
            data={
                "token": cfg["pushover_token"],
                "user": cfg["pushover_user"],
                "title": "automute",
                "message": "Test notification from automutectl",
            },
            timeout=5,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    print("ok")
    return 0


def format_status(resp: dict) -> str:
    settings = resp.get("settings", {})
    line = f"ok  version={resp.get('version', '')} status={resp.get('status')!r} idle={resp.get('idle_progress')}"
    line += f" reason={resp.get('auto_mute_reason')} locked={resp.get('screen_locked')}"
    line += f" enabled={settings.get('is_enabled')}"
    return line


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Control automute via its local UNIX socket")
    ap.add_argument("command", choices=["status", "enable", "disable", "toggle", "set", "test-notify"],
                    help="Command to send to the daemon")
    ap.add_argument("args", nargs="*", help="For 'set': NAME VALUE (e.g. set inactivity_minutes 10)")
    ap.add_argument("--socket", default=os.environ.get("AUTOMUTE_SOCKET") or default_socket_path(),
                    help="Control socket path (default: $XDG_RUNTIME_DIR/automute/automute.sock)")
    ap.add_argument("--json", action="store_true", help="Print raw JSON response")
    args = ap.parse_args(argv)

    if args.command == "test-notify":
        return _test_notify()

    if args.command == "set" and len(args.args) != 2:
        ap.error("set requires NAME VALUE")
    cmd = " ".join([args.command] + list(args.args))

    try:
        resp = _send(args.socket, cmd)
    except OSError as e:
        print(f"error: cannot reach automute at {args.socket}: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(resp, indent=2, sort_keys=True))
        return 0 if resp.get("ok") else 2

    if not resp.get("ok"):
        print(f"error: {resp.get('error', 'unknown error')}", file=sys.stderr)
        raw = resp.get("raw")
        if raw:
            print(raw, file=sys.stderr)
        return 2

    print(format_status(resp) if args.command == "status" else "ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
