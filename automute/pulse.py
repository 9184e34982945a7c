from __future__ import annotations

import threading
from typing import Callable, Optional, Tuple

import pulsectl

from .audio import AudioDevice, DeviceQueryFailed, DeviceSetFailed, NoDefaultDevice, PropertyUnsupported
from .events import DefaultDeviceChanged, ExternalMuteChanged, Sink, Subscribers


def _status(err: Exception):
    return err.args[0] if err.args else None


class PulseAudioDevice(AudioDevice):
    """AudioDevice backed by PulseAudio (or PipeWire's pulse server) via pulsectl.

    Two connections are used: one for get/set calls made from the coordinator
    thread, and one owned by the listener thread. pulsectl callbacks may not
    issue requests, so the listener callback only flags a change and stops the
    loop; the default sink is then re-read outside the callback."""
    def __init__(self, logger, client_name: str = "automute", server: Optional[str] = None,
                 reconnect_delay_s: float = 2.0):
        self.logger = logger
        self.client_name = client_name
        self.server = server
        self.reconnect_delay_s = float(reconnect_delay_s)

        self._pulse = None
        self._lock = threading.Lock()
        self._subscribers = Subscribers()

        self._stop_evt = threading.Event()
        self._listener: Optional[threading.Thread] = None
        self._dirty = False
        self._last_device: Optional[str] = None
        self._last_muted: Optional[bool] = None

    # ---------------- Requests ----------------

    def _connection(self):
        if self._pulse is None:
            try:
                self._pulse = pulsectl.Pulse(self.client_name, server=self.server)
            except pulsectl.PulseError as e:
                raise DeviceQueryFailed(f"cannot connect to pulse server: {e}", status=_status(e)) from e
        return self._pulse

    def _drop_connection(self):
        if self._pulse is not None:
            try:
                self._pulse.close()
            except pulsectl.PulseError:
                pass
            self._pulse = None

    @staticmethod
    def _default_sink(pulse):
        try:
            name = pulse.server_info().default_sink_name
        except pulsectl.PulseError as e:
            raise DeviceQueryFailed(str(e), status=_status(e)) from e
        if not name:
            raise NoDefaultDevice()
        try:
            return pulse.get_sink_by_name(name)
        except pulsectl.PulseIndexError as e:
            raise NoDefaultDevice(f"default sink {name!r} not found", status=_status(e)) from e
        except pulsectl.PulseError as e:
            raise DeviceQueryFailed(str(e), status=_status(e)) from e

    @classmethod
    def _read_default(cls, pulse) -> Tuple[str, bool]:
        sink = cls._default_sink(pulse)
        mute = getattr(sink, "mute", None)
        if mute is None:
            raise PropertyUnsupported(f"sink {sink.name!r} has no mute control")
        return sink.name, bool(mute)

    def default_device(self) -> Optional[str]:
        with self._lock:
            try:
                return self._default_sink(self._connection()).name
            except NoDefaultDevice:
                return None
            except DeviceQueryFailed:
                self._drop_connection()
                raise

    def is_muted(self) -> bool:
        with self._lock:
            try:
                return self._read_default(self._connection())[1]
            except DeviceQueryFailed:
                self._drop_connection()
                raise

    def set_muted(self, muted: bool) -> None:
        with self._lock:
            try:
                pulse = self._connection()
                sink = self._default_sink(pulse)
                if getattr(sink, "mute", None) is None:
                    raise PropertyUnsupported(f"sink {sink.name!r} has no mute control")
                pulse.mute(sink, bool(muted))
            except DeviceQueryFailed:
                self._drop_connection()
                raise
            except pulsectl.PulseError as e:
                self._drop_connection()
                raise DeviceSetFailed(str(e), status=_status(e)) from e

    # ---------------- Notifications ----------------

    def subscribe(self, sink: Sink) -> Callable[[], None]:
        unsubscribe = self._subscribers.subscribe(sink)
        if self._listener is None:
            self._stop_evt.clear()
            self._listener = threading.Thread(target=self._listen_loop, name="automute-pulse", daemon=True)
            self._listener.start()
        return unsubscribe

    def _on_pulse_event(self, ev):
        self._dirty = True
        raise pulsectl.PulseLoopStop

    def _listen_loop(self):
        """Keep a listener connection alive until close(), reconnecting on errors."""
        while not self._stop_evt.is_set():
            try:
                with pulsectl.Pulse(self.client_name + "-events", server=self.server) as pulse:
                    pulse.event_mask_set("sink", "server")
                    pulse.event_callback_set(self._on_pulse_event)
                    self._refresh(pulse, initial=True)
                    while not self._stop_evt.is_set():
                        self._dirty = False
                        pulse.event_listen(timeout=0.5)
                        if self._dirty:
                            self._refresh(pulse)
            except pulsectl.PulseError as e:
                self.logger.emit("audio_listener_error", error=str(e))
                self._stop_evt.wait(self.reconnect_delay_s)

    def _refresh(self, pulse, initial: bool = False):
        try:
            device, muted = self._read_default(pulse)
        except (NoDefaultDevice, PropertyUnsupported) as e:
            self.logger.debug("audio_no_mute_target", error=str(e))
            # A sink that comes back after vanishing counts as a device change.
            self._last_device, self._last_muted = None, None
            return
        except DeviceQueryFailed as e:
            self.logger.emit("audio_listener_error", error=str(e))
            return

        if initial:
            self._last_device, self._last_muted = device, muted
            return

        if device != self._last_device:
            # The new device's own mute flag is adopted silently; the
            # coordinator decides whether to re-assert mute on it.
            self._last_device, self._last_muted = device, muted
            self.logger.emit("audio_device_changed", device=device)
            self._subscribers.emit(DefaultDeviceChanged(device=device))
            return

        if muted != self._last_muted:
            self._last_muted = muted
            self._subscribers.emit(ExternalMuteChanged(muted=muted))

    def close(self) -> None:
        self._stop_evt.set()
        t = self._listener
        if t is not None and t is not threading.current_thread():
            t.join(timeout=2.0)
        self._listener = None
        with self._lock:
            self._drop_connection()
