from __future__ import annotations

from .audio import AudioError
from .idle import CommandIdleClock, IdleClockError
from .session import LoginctlSessionLock, SessionLockError, read_locked_hint
from .util import format_mm_ss


def run_doctor(args, logger) -> int:
    """Check the idle, lock and audio backends and print diagnostics.

    Read-only: the mute state is never changed. Returns 0 when every check
    passes, 1 otherwise."""
    print("Doctor Mode (safe):")
    print("  - The mute state is never changed.")
    print()
    warnings = 0

    clock = CommandIdleClock(args.idle_command)
    try:
        idle = clock.seconds_since_last_input()
        print(f"  OK: idle clock ({args.idle_command}) reports {format_mm_ss(idle)} since last input")
    except IdleClockError as e:
        warnings += 1
        print(f"  WARN: idle clock unavailable: {e}")

    session_id = LoginctlSessionLock(logger, session_id=args.session_id).session_id
    try:
        locked = read_locked_hint(session_id)
        print(f"  OK: logind session {session_id!r} LockedHint={'yes' if locked else 'no'}")
    except SessionLockError as e:
        warnings += 1
        print(f"  WARN: cannot read lock state for session {session_id!r}: {e}")

    # Imported here so the rest of the CLI works without libpulse present.
    from .pulse import PulseAudioDevice

    device = PulseAudioDevice(logger, server=args.pulse_server)
    try:
        name = device.default_device()
        if name is None:
            warnings += 1
            print("  WARN: no default audio output device")
        else:
            muted = device.is_muted()
            print(f"  OK: default output {name!r} muted={muted}")
    except AudioError as e:
        warnings += 1
        print(f"  WARN: audio device check failed ({e.kind}): {e}")
    finally:
        device.close()

    print()
    print("Doctor complete." if not warnings else f"Doctor complete with {warnings} warning(s).")
    return 0 if not warnings else 1
