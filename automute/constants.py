from __future__ import annotations

VERSION = "1.0.0"

POLL_INTERVAL_S = 1.0
DEFAULT_INACTIVITY_MINUTES = 5
DEFAULT_IDLE_COMMAND = "xprintidle"

CONTROL_STATUS = "status"
CONTROL_ENABLE = "enable"
CONTROL_DISABLE = "disable"
CONTROL_TOGGLE = "toggle"
CONTROL_SET = "set"


USAGE_EXAMPLES = """\
Usage examples:
  # Run with defaults (mute after 5 minutes idle and on screen lock)
  automute

  # Shorter idle threshold, never auto-unmute on unlock
  automute --inactivity-minutes 2 --no-unmute-on-unlock

  # Structured logs for journald scraping
  automute --json --no-banner

  # Use a TOML config file (CLI flags override it)
  automute --config ~/.config/automute/config.toml

  # Host diagnostic (never changes the mute state)
  automute --doctor
"""
