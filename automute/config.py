from __future__ import annotations

import argparse
import os
from argparse import RawDescriptionHelpFormatter
from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

try:
    import tomllib  # py3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from .constants import DEFAULT_IDLE_COMMAND, DEFAULT_INACTIVITY_MINUTES, USAGE_EXAMPLES


_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def parse_bool(val: Any) -> bool:
    """Parse a bool from a bool or a yes/no style string. Raises ValueError."""
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValueError(f"not a boolean: {val!r}")


def get_bool_env(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return parse_bool(val)
    except ValueError:
        return default


def default_socket_path() -> str:
    runtime = os.getenv("XDG_RUNTIME_DIR")
    if runtime:
        return os.path.join(runtime, "automute", "automute.sock")
    return os.path.join("/tmp", f"automute-{os.getuid()}", "automute.sock")


@dataclass
class Settings:
    """User-facing toggles consumed by the coordinator.

    Values are hot-reloadable: a change applies to the next event, never
    retroactively."""
    is_enabled: bool = True
    mute_on_inactivity: bool = True
    mute_on_screen_lock: bool = True
    unmute_on_activity: bool = True
    unmute_on_unlock: bool = True
    inactivity_minutes: int = DEFAULT_INACTIVITY_MINUTES

    @property
    def inactivity_threshold_s(self) -> float:
        return float(self.inactivity_minutes * 60)

    def to_dict(self) -> dict:
        return asdict(self)


SETTING_NAMES = tuple(f.name for f in fields(Settings))


def coerce_setting(name: str, value: Any):
    """Validate and convert a raw setting value. Raises KeyError/ValueError."""
    if name not in SETTING_NAMES:
        raise KeyError(name)
    if name == "inactivity_minutes":
        if isinstance(value, bool):
            raise ValueError("inactivity_minutes must be a positive integer")
        try:
            minutes = int(str(value).strip()) if not isinstance(value, int) else value
        except ValueError:
            raise ValueError(f"inactivity_minutes must be a positive integer, got {value!r}") from None
        if minutes <= 0:
            raise ValueError(f"inactivity_minutes must be a positive integer, got {value!r}")
        return minutes
    return parse_bool(value)


def get_notifier_config(cfg: Optional[dict] = None):
    """Notification settings. Environment variables win over the [notify] table."""
    cfg = cfg or {}
    return {
        "enabled": get_bool_env("AUTOMUTE_NOTIFY", bool(_get_cfg(cfg, "notify", "enabled", False))),
        "pushover_token": os.getenv("PUSHOVER_TOKEN") or _get_cfg(cfg, "notify", "pushover_token", None),
        "pushover_user": os.getenv("PUSHOVER_USER") or _get_cfg(cfg, "notify", "pushover_user", None),
    }


def load_toml_config(path: str) -> dict:
    """Load TOML configuration from path."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _get_cfg(cfg: dict, section: str, key: str, default=None):
    sec = cfg.get(section, {})
    if not isinstance(sec, dict):
        return default
    return sec.get(key, default)


def config_defaults_from(cfg: dict) -> dict:
    """Map TOML config onto argparse destinations (built-in defaults fill gaps)."""
    return {
        "is_enabled": _get_cfg(cfg, "monitoring", "enabled", True),
        "inactivity_minutes": _get_cfg(cfg, "monitoring", "inactivity_minutes", DEFAULT_INACTIVITY_MINUTES),
        "mute_on_inactivity": _get_cfg(cfg, "triggers", "mute_on_inactivity", True),
        "mute_on_screen_lock": _get_cfg(cfg, "triggers", "mute_on_screen_lock", True),
        "unmute_on_activity": _get_cfg(cfg, "triggers", "unmute_on_activity", True),
        "unmute_on_unlock": _get_cfg(cfg, "triggers", "unmute_on_unlock", True),
        "idle_command": _get_cfg(cfg, "backends", "idle_command", DEFAULT_IDLE_COMMAND),
        "session_id": _get_cfg(cfg, "backends", "session_id", None),
        "pulse_server": _get_cfg(cfg, "backends", "pulse_server", None),
        "verbose": _get_cfg(cfg, "logging", "verbose", False),
        "json": _get_cfg(cfg, "logging", "json", False),
        "no_banner": _get_cfg(cfg, "logging", "no_banner", False),
        "control_socket": _get_cfg(cfg, "control", "socket", default_socket_path()),
    }


def apply_config(args, cfg: Optional[dict] = None):
    """Backfill every option left unset on the command line from cfg, then defaults."""
    for k, v in config_defaults_from(cfg or {}).items():
        if getattr(args, k, None) is None:
            setattr(args, k, v)
    return args


def settings_from_args(args) -> Settings:
    """Build validated Settings from resolved args. Raises ValueError."""
    values = {}
    for name in SETTING_NAMES:
        try:
            values[name] = coerce_setting(name, getattr(args, name))
        except ValueError as e:
            raise ValueError(f"{name}: {e}") from None
    return Settings(**values)


def resolved_config_dict(args) -> dict:
    return {
        "monitoring": {
            "enabled": args.is_enabled,
            "inactivity_minutes": args.inactivity_minutes,
        },
        "triggers": {
            "mute_on_inactivity": args.mute_on_inactivity,
            "mute_on_screen_lock": args.mute_on_screen_lock,
            "unmute_on_activity": args.unmute_on_activity,
            "unmute_on_unlock": args.unmute_on_unlock,
        },
        "backends": {
            "idle_command": args.idle_command,
            "session_id": args.session_id,
            "pulse_server": args.pulse_server,
        },
        "logging": {
            "verbose": bool(args.verbose),
            "json": bool(args.json),
            "no_banner": bool(args.no_banner),
        },
        "control": {
            "socket": args.control_socket,
        },
    }


def _add_toggle(ap, name: str, dest: str, help_on: str, help_off: str):
    ap.add_argument(f"--{name}", dest=dest, action="store_true", help=help_on)
    ap.add_argument(f"--no-{name}", dest=dest, action="store_false", help=help_off)


def build_arg_parser():
    """Construct the CLI argument parser for the daemon.

    Every option defaults to None so that apply_config() can tell which ones
    were given on the command line; those override the TOML file."""
    ap = argparse.ArgumentParser(prog="automute", epilog=USAGE_EXAMPLES, formatter_class=RawDescriptionHelpFormatter,
                                 description="Mute the default audio output while you are away.")
    ap.set_defaults(**{k: None for k in config_defaults_from({})})

    state_group = ap.add_mutually_exclusive_group()
    state_group.add_argument("--enabled", dest="is_enabled", action="store_true", help="Start with monitoring enabled (default).")
    state_group.add_argument("--disabled", dest="is_enabled", action="store_false", help="Start with monitoring disabled.")
    ap.add_argument("--inactivity-minutes", type=int, help="Minutes without keyboard/mouse input before muting (default: 5).")

    _add_toggle(ap, "mute-on-inactivity", "mute_on_inactivity",
                "Mute when the inactivity threshold is reached.", "Never mute because of inactivity.")
    _add_toggle(ap, "mute-on-screen-lock", "mute_on_screen_lock",
                "Mute when the session locks.", "Never mute because of a screen lock.")
    _add_toggle(ap, "unmute-on-activity", "unmute_on_activity",
                "Unmute when input resumes after an inactivity mute.", "Keep an inactivity mute after input resumes.")
    _add_toggle(ap, "unmute-on-unlock", "unmute_on_unlock",
                "Unmute when the session unlocks after a lock mute.", "Keep a lock mute after unlocking.")

    ap.add_argument("--idle-command", help="Command printing milliseconds since last input (default: xprintidle).")
    ap.add_argument("--session-id", help="logind session to watch for locks (default: $XDG_SESSION_ID or 'auto').")
    ap.add_argument("--pulse-server", help="PulseAudio server address (default: the session's server).")

    ap.add_argument("--verbose", dest="verbose", action="store_true", help="Verbose logging (includes every processed event).")
    ap.add_argument("--no-verbose", dest="verbose", action="store_false", help="Disable verbose logging.")
    json_group = ap.add_mutually_exclusive_group()
    json_group.add_argument("--json", dest="json", action="store_true", help="Emit JSON log events.")
    json_group.add_argument("--no-json", dest="json", action="store_false", help="Disable JSON log output.")
    ap.add_argument("--no-banner", dest="no_banner", action="store_true", help="Disable the startup banner.")
    ap.add_argument("--banner", dest="no_banner", action="store_false", help="Enable the startup banner.")

    sock_group = ap.add_mutually_exclusive_group()
    sock_group.add_argument("--control-socket", dest="control_socket",
                            help="Path of the local UNIX control socket used by automutectl.")
    sock_group.add_argument("--no-control-socket", dest="control_socket", action="store_const", const="",
                            help="Disable the local control socket.")

    ap.add_argument("--doctor", action="store_true", help="Check idle, lock and audio backends, then exit. Never changes the mute state.")
    ap.add_argument("--config", help="Path to a TOML config file. CLI args override config values.")
    ap.add_argument("--print-config", action="store_true", help="Print the resolved configuration and exit.")
    ap.add_argument("--version", action="store_true", help="Print version and exit.")
    return ap
