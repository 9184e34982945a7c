import pytest

from automute.audio import AudioDevice
from automute.config import Settings
from automute.coordinator import MuteCoordinator
from automute.events import DefaultDeviceChanged, ExternalMuteChanged, Subscribers


class CapturingLogger:
    """Minimal logger that matches the .emit(event, **fields) / .debug() contract."""
    def __init__(self):
        self.events = []

    def emit(self, event: str, **fields):
        self.events.append((event, fields))

    def debug(self, event: str, **fields):
        pass

    def names(self):
        return [name for name, _ in self.events]


class FakeAudioDevice(AudioDevice):
    """In-memory output device recording every set_muted attempt."""
    def __init__(self, muted=False):
        self.muted = muted
        self.calls = []
        self.fail_set = None
        self.fail_query = None
        self.closed = False
        self.name = "sink-1"
        self._subscribers = Subscribers()

    def default_device(self):
        return self.name

    def is_muted(self):
        if self.fail_query is not None:
            raise self.fail_query
        return self.muted

    def set_muted(self, muted):
        self.calls.append(muted)
        if self.fail_set is not None:
            raise self.fail_set
        self.muted = muted

    def subscribe(self, sink):
        return self._subscribers.subscribe(sink)

    def close(self):
        self.closed = True

    def user_sets(self, muted):
        """Simulate the user (or another app) flipping the mute flag."""
        self.muted = muted
        self._subscribers.emit(ExternalMuteChanged(muted=muted))

    def switch_device(self, name="sink-2"):
        """Simulate headphones being plugged in: a new, unmuted default device."""
        self.name = name
        self.muted = False
        self._subscribers.emit(DefaultDeviceChanged(device=name))

    @property
    def subscriber_count(self):
        return len(self._subscribers)


class FakeSource:
    """Stands in for the InactivityMonitor or SessionLock."""
    def __init__(self):
        self.started = 0
        self.stopped = 0
        self.threshold = None
        self._subscribers = Subscribers()

    def subscribe(self, sink):
        return self._subscribers.subscribe(sink)

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def update_threshold(self, seconds):
        self.threshold = seconds

    def emit(self, *events):
        for ev in events:
            self._subscribers.emit(ev)

    @property
    def subscriber_count(self):
        return len(self._subscribers)


class Harness:
    def __init__(self, coordinator, device, idle, lock, logger):
        self.coordinator = coordinator
        self.device = device
        self.idle = idle
        self.lock = lock
        self.logger = logger

    @property
    def state(self):
        return self.coordinator.state

    @property
    def memory(self):
        return self.coordinator.memory

    def run(self, *events):
        """Post events straight to the coordinator and process them."""
        for ev in events:
            self.coordinator.post(ev)
        self.coordinator.run_pending()


@pytest.fixture
def logger():
    return CapturingLogger()


@pytest.fixture
def make_harness(logger):
    def _make(muted=False, notifier=None, **settings):
        device = FakeAudioDevice(muted=muted)
        idle = FakeSource()
        lock = FakeSource()
        coord = MuteCoordinator(
            settings=Settings(**settings),
            device=device,
            inactivity=idle,
            session_lock=lock,
            logger=logger,
            notifier=notifier,
        )
        coord.start(background=False)
        return Harness(coord, device, idle, lock, logger)
    return _make
