from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from typing import List, Optional

from .config import (
    SETTING_NAMES,
    apply_config,
    build_arg_parser,
    get_notifier_config,
    load_toml_config,
    resolved_config_dict,
    settings_from_args,
    tomllib,
)
from .constants import VERSION
from .control import ControlServer
from .coordinator import MuteCoordinator
from .doctor import run_doctor
from .events import EnabledChanged, SettingChanged
from .idle import CommandIdleClock, InactivityMonitor
from .logging import JsonLogger
from .notify import Notifier
from .session import LoginctlSessionLock


def _load_config(path: Optional[str]) -> dict:
    if not path:
        return {}
    return load_toml_config(path)


def reload_settings(config_path: Optional[str], cli_values: dict, coordinator, logger) -> List[object]:
    """Re-read the TOML file and post an event for every setting that changed.

    Options given on the command line keep overriding the file. Returns the
    posted events."""
    try:
        cfg = _load_config(config_path)
        args = apply_config(argparse.Namespace(**cli_values), cfg)
        new = settings_from_args(args)
    except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
        logger.emit("config_reload_failed", path=config_path, error=str(e))
        return []

    posted = []
    for name in SETTING_NAMES:
        value = getattr(new, name)
        if value == getattr(coordinator.settings, name):
            continue
        if name == "is_enabled":
            ev = EnabledChanged(enabled=value)
        else:
            ev = SettingChanged(name=name, value=value)
        coordinator.post(ev)
        posted.append(ev)
    logger.emit("config_reloaded", path=config_path, changes=len(posted))
    return posted


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Parses args, configures the coordinator, and runs the daemon."""
    ap = build_arg_parser()
    args = ap.parse_args(argv)
    cli_values = dict(vars(args))

    # Apply TOML configuration (if provided). CLI arguments take precedence.
    try:
        cfg = _load_config(args.config)
    except (OSError, tomllib.TOMLDecodeError) as e:
        print(f"ERROR: cannot load config {args.config}: {e}", file=sys.stderr)
        return 2
    apply_config(args, cfg)

    if args.version:
        print(VERSION)
        return 0

    # Print resolved configuration and exit (does not touch any backend).
    if args.print_config:
        print(json.dumps(resolved_config_dict(args), indent=2, sort_keys=True))
        return 0

    try:
        settings = settings_from_args(args)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    logger = JsonLogger(enable_json=bool(args.json), verbose=bool(args.verbose))

    if args.doctor:
        return run_doctor(args, logger)

    # Imported here so --help/--print-config work without libpulse present.
    from .pulse import PulseAudioDevice

    device = PulseAudioDevice(logger, server=args.pulse_server)
    inactivity = InactivityMonitor(CommandIdleClock(args.idle_command), settings.inactivity_threshold_s, logger)
    session_lock = LoginctlSessionLock(logger, session_id=args.session_id)
    coordinator = MuteCoordinator(
        settings=settings,
        device=device,
        inactivity=inactivity,
        session_lock=session_lock,
        logger=logger,
        notifier=Notifier(**get_notifier_config(cfg)),
    )

    if not args.no_banner:
        print(f"automute {VERSION}")
        # Structured startup event for log scraping
        logger.emit(
            "startup",
            version=VERSION,
            config=args.config,
            idle_command=args.idle_command,
            session=session_lock.session_id,
            control_socket=args.control_socket or None,
            **settings.to_dict(),
        )

    coordinator.start()
    control = None
    if args.control_socket:
        control = ControlServer(coordinator, args.control_socket, logger)
        control.start()

    stop = threading.Event()
    reload_requested = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGHUP, lambda *_: reload_requested.set())

    exit_code = 0
    while not stop.is_set():
        if reload_requested.is_set():
            reload_requested.clear()
            reload_settings(args.config, cli_values, coordinator, logger)
        if not coordinator.worker_alive:
            logger.emit("worker_dead")
            exit_code = 3
            break
        stop.wait(0.2)

    if control is not None:
        control.stop()
    coordinator.shutdown()
    logger.emit("shutdown", exit_code=exit_code)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
