from automute.notify import Notifier


def _mk_notifier(monkeypatch):
    n = Notifier(enabled=True, pushover_token="t", pushover_user="u")
    calls = []
    monkeypatch.setattr(n, "send", lambda title, message, priority=0: calls.append((title, message, priority)))
    return n, calls


def test_single_notification_per_failure_kind(monkeypatch):
    n, calls = _mk_notifier(monkeypatch)

    n.device_error("no_default_device", "no output device")
    n.device_error("no_default_device", "no output device")
    assert len(calls) == 1

    # A different failure is its own notification.
    n.device_error("device_set_failed", "could not mute")
    assert [c[1] for c in calls] == ["no output device", "could not mute"]


def test_clear_rearms_notifications(monkeypatch):
    n, calls = _mk_notifier(monkeypatch)
    n.device_error("device_set_failed", "could not mute")
    n.clear()
    n.device_error("device_set_failed", "could not mute")
    assert len(calls) == 2
