import subprocess
import time

import pytest

from automute import idle as idle_mod
from automute.events import ActivityResumed, IdleTimeUpdated, ThresholdReached
from automute.idle import CommandIdleClock, IdleClockError, InactivityMonitor


class ScriptedClock:
    """Returns queued samples; an Exception instance in the script is raised."""
    def __init__(self, *samples):
        self.samples = list(samples)
        self.last = 0.0

    def seconds_since_last_input(self):
        if self.samples:
            value = self.samples.pop(0)
            if isinstance(value, Exception):
                raise value
            self.last = value
        return self.last


def _monitor(logger, *samples, threshold_s=10.0):
    mon = InactivityMonitor(ScriptedClock(*samples), threshold_s, logger, interval_s=0.01)
    events = []
    mon.subscribe(events.append)
    return mon, events


def _edges(events):
    return [type(e).__name__ for e in events if not isinstance(e, IdleTimeUpdated)]


def test_edges_fire_once_per_episode(logger):
    mon, events = _monitor(logger, 1.0, 9.9, 10.0, 11.0, 30.0, 0.5, 0.2, 12.0)
    for _ in range(8):
        mon.tick()

    assert _edges(events) == ["ThresholdReached", "ActivityResumed", "ThresholdReached"]
    assert [e.seconds for e in events if isinstance(e, IdleTimeUpdated)] == [1.0, 9.9, 10.0, 11.0, 30.0, 0.5, 0.2, 12.0]


def test_idle_time_published_every_tick(logger):
    mon, events = _monitor(logger, 0.0, 0.0, 0.0)
    for _ in range(3):
        mon.tick()
    assert events == [IdleTimeUpdated(seconds=0.0)] * 3


def test_threshold_update_applies_on_next_tick(logger):
    mon, events = _monitor(logger, 6.0, 6.0, threshold_s=10.0)
    mon.tick()
    mon.update_threshold(5.0)
    mon.tick()
    assert _edges(events) == ["ThresholdReached"]
    assert mon.threshold_s == 5.0


def test_stop_resets_the_episode(logger):
    mon, events = _monitor(logger, 20.0, 20.0, 20.0)
    mon.tick()
    assert mon.was_idle is True

    mon.stop()
    assert mon.was_idle is False
    mon.tick()
    mon.tick()
    # Fresh episode after stop: exactly one new ThresholdReached.
    assert _edges(events) == ["ThresholdReached", "ThresholdReached"]


def test_clock_errors_skip_tick_and_log_once(logger):
    mon, events = _monitor(logger, IdleClockError("no display"), IdleClockError("no display"), 3.0)
    mon.tick()
    mon.tick()
    assert events == []
    assert logger.names() == ["idle_clock_error"]

    mon.tick()
    assert events == [IdleTimeUpdated(seconds=3.0)]
    assert logger.names() == ["idle_clock_error", "idle_clock_recovered"]


@pytest.mark.integration
def test_start_polls_and_stop_is_idempotent(logger):
    mon, events = _monitor(logger, 20.0, threshold_s=10.0)
    mon.start()
    mon.start()
    assert mon.running
    deadline = time.time() + 2.0
    while time.time() < deadline and not any(isinstance(e, ThresholdReached) for e in events):
        time.sleep(0.01)
    mon.stop()
    mon.stop()

    assert not mon.running
    assert [e for e in events if isinstance(e, ThresholdReached)] == [ThresholdReached()]
    assert not any(isinstance(e, ActivityResumed) for e in events)


def test_command_clock_parses_milliseconds(monkeypatch):
    seen = {}

    def fake_run(argv, **kwargs):
        seen["argv"] = argv
        return subprocess.CompletedProcess(argv, 0, stdout="1500\n", stderr="")

    monkeypatch.setattr(idle_mod.subprocess, "run", fake_run)
    clock = CommandIdleClock("xprintidle --flag")
    assert clock.seconds_since_last_input() == 1.5
    assert seen["argv"] == ["xprintidle", "--flag"]


def test_command_clock_errors(monkeypatch):
    def missing(argv, **kwargs):
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    monkeypatch.setattr(idle_mod.subprocess, "run", missing)
    with pytest.raises(IdleClockError):
        CommandIdleClock().seconds_since_last_input()

    def garbage(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 0, stdout="couldn't open display\n", stderr="")

    monkeypatch.setattr(idle_mod.subprocess, "run", garbage)
    with pytest.raises(IdleClockError):
        CommandIdleClock().seconds_since_last_input()

    def failed(argv, **kwargs):
        raise subprocess.CalledProcessError(1, argv)

    monkeypatch.setattr(idle_mod.subprocess, "run", failed)
    with pytest.raises(IdleClockError):
        CommandIdleClock().seconds_since_last_input()


def test_idle_clock_is_abstract():
    with pytest.raises(TypeError):
        idle_mod.IdleClock()
