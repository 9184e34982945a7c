import subprocess

import pytest

from automute import session as session_mod
from automute.events import Locked, Unlocked
from automute.session import LoginctlSessionLock, SessionLockError, read_locked_hint


def _scripted_hint(monkeypatch, *values):
    script = list(values)

    def fake(session_id, timeout_s=2.0):
        value = script.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    monkeypatch.setattr(session_mod, "read_locked_hint", fake)


def test_first_poll_is_baseline_then_edges_only(monkeypatch, logger):
    _scripted_hint(monkeypatch, False, False, True, True, False, False)
    lock = LoginctlSessionLock(logger, session_id="3")
    events = []
    lock.subscribe(events.append)

    for _ in range(6):
        lock.poll()

    assert events == [Locked(), Unlocked()]
    assert lock.is_locked is False


def test_locked_baseline_is_silent(monkeypatch, logger):
    _scripted_hint(monkeypatch, True, False)
    lock = LoginctlSessionLock(logger, session_id="3")
    events = []
    lock.subscribe(events.append)
    lock.poll()
    assert events == []
    assert lock.is_locked is True
    lock.poll()
    assert events == [Unlocked()]


def test_read_errors_are_logged_once_per_streak(monkeypatch, logger):
    _scripted_hint(monkeypatch, False, SessionLockError("boom"), SessionLockError("boom"), True)
    lock = LoginctlSessionLock(logger, session_id="3")
    events = []
    lock.subscribe(events.append)
    for _ in range(4):
        lock.poll()

    assert logger.names() == ["lock_error"]
    assert events == [Locked()]


def test_unsubscribe_stops_delivery(monkeypatch, logger):
    _scripted_hint(monkeypatch, False, True)
    lock = LoginctlSessionLock(logger, session_id="3")
    events = []
    unsubscribe = lock.subscribe(events.append)
    lock.poll()
    unsubscribe()
    lock.poll()
    assert events == []


def test_session_id_defaults_to_environment(monkeypatch, logger):
    monkeypatch.setenv("XDG_SESSION_ID", "c7")
    assert LoginctlSessionLock(logger).session_id == "c7"
    monkeypatch.delenv("XDG_SESSION_ID")
    assert LoginctlSessionLock(logger).session_id == "auto"


@pytest.mark.parametrize("out,expected", [("yes\n", True), ("no\n", False)])
def test_read_locked_hint_parses_loginctl(monkeypatch, out, expected):
    def fake_run(argv, **kwargs):
        assert argv[:3] == ["loginctl", "show-session", "3"]
        return subprocess.CompletedProcess(argv, 0, stdout=out, stderr="")

    monkeypatch.setattr(session_mod.subprocess, "run", fake_run)
    assert read_locked_hint("3") is expected


def test_read_locked_hint_errors(monkeypatch):
    def junk(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 0, stdout="\n", stderr="")

    monkeypatch.setattr(session_mod.subprocess, "run", junk)
    with pytest.raises(SessionLockError):
        read_locked_hint("3")

    def failed(argv, **kwargs):
        raise subprocess.CalledProcessError(1, argv, stderr="Failed to get session")

    monkeypatch.setattr(session_mod.subprocess, "run", failed)
    with pytest.raises(SessionLockError):
        read_locked_hint("3")


def test_session_lock_backends_must_implement_start_and_stop():
    class Incomplete(session_mod.SessionLock):
        def start(self):
            pass

    with pytest.raises(TypeError):
        Incomplete()
