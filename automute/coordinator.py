from __future__ import annotations

import queue
import threading
from dataclasses import asdict
from typing import Callable, List, Optional

from .audio import AudioDevice, AudioError
from .config import Settings, coerce_setting
from .events import (
    ActivityResumed,
    DefaultDeviceChanged,
    EnabledChanged,
    Event,
    ExternalMuteChanged,
    IdleTimeUpdated,
    Locked,
    SettingChanged,
    Subscribers,
    ThresholdReached,
    ToggleRequested,
    Unlocked,
)
from .state import Active, CoordinatorMemory, Disabled, Idle, MonitoringState, Muted, MuteReason, ScreenLocked
from .util import format_mm_ss, now_s


class MuteCoordinator:
    """Decides when the default output device is auto-muted and unmuted.

    Idle edges, lock/unlock notifications and device notifications are posted
    to one queue and handled one at a time by a single worker thread, so the
    CoordinatorMemory and the published MonitoringState have a single writer.

    The coordinator never undoes a mute it did not cause: the device's mute flag
    is latched when a trigger fires, and an external unmute relinquishes
    ownership of the mute."""
    def __init__(
        self,
        settings: Settings,
        device: AudioDevice,
        inactivity,
        session_lock,
        logger,
        notifier=None,
    ):
        """
        Args:
            settings: Initial toggles and threshold; updated only through events.
            device: AudioDevice owned for the coordinator's lifetime (closed by shutdown()).
            inactivity: InactivityMonitor (or anything with start/stop/subscribe/update_threshold).
            session_lock: SessionLock (start/stop/subscribe).
            logger: JsonLogger-compatible object with emit() and debug().
            notifier: Optional Notifier for device errors.
        """
        self.settings = settings
        self.device = device
        self.inactivity = inactivity
        self.session_lock = session_lock
        self.logger = logger
        self.notifier = notifier

        self.memory = CoordinatorMemory()
        self.state: MonitoringState = Disabled()
        self.state_since = now_s()
        self.current_idle_time = 0.0

        self._queue: "queue.Queue[Event]" = queue.Queue()
        self._stop_evt = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._monitoring = False
        self._source_unsubs: List[Callable[[], None]] = []
        self._device_unsub: Optional[Callable[[], None]] = None
        self._state_listeners = Subscribers()

        self._handlers = {
            IdleTimeUpdated: self._on_idle_time_updated,
            ThresholdReached: self._on_threshold_reached,
            ActivityResumed: self._on_activity_resumed,
            Locked: self._on_locked,
            Unlocked: self._on_unlocked,
            ExternalMuteChanged: self._on_external_mute_changed,
            DefaultDeviceChanged: self._on_default_device_changed,
            EnabledChanged: self._on_enabled_changed,
            SettingChanged: self._on_setting_changed,
            ToggleRequested: self._on_toggle_requested,
        }

    # ---------------- Lifecycle ----------------

    def start(self, background: bool = True):
        """Wire the device, apply the initial enabled setting and start the worker.

        With background=False no worker thread is started; events are then
        processed by run_pending()."""
        if self._device_unsub is None:
            self._device_unsub = self.device.subscribe(self.post)
            if self.settings.is_enabled:
                self._start_monitoring()
            else:
                self._set_state(Disabled())
        if background and self._worker is None:
            self._stop_evt.clear()
            self._worker = threading.Thread(target=self._loop, name="automute-coordinator", daemon=True)
            self._worker.start()

    def shutdown(self):
        """Stop the worker and every event source, then release the device. Idempotent."""
        self._stop_evt.set()
        t = self._worker
        self._worker = None
        if t is not None and t is not threading.current_thread():
            t.join(timeout=2.0)
        self._stop_sources()
        self._monitoring = False
        if self._device_unsub is not None:
            self._device_unsub()
            self._device_unsub = None
            self.device.close()

    @property
    def worker_alive(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def post(self, event: Event):
        """Queue an event from any thread."""
        self._queue.put(event)

    def toggle(self):
        self.post(ToggleRequested())

    def run_pending(self) -> int:
        """Handle every queued event on the calling thread; returns how many ran."""
        n = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return n
            self.handle(event)
            n += 1

    def _loop(self):
        while not self._stop_evt.is_set():
            try:
                event = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            self.handle(event)

    def handle(self, event: Event):
        """Run the handler for one event. Must only be called from the serialized context."""
        self.logger.debug("event", type=type(event).__name__, **asdict(event))
        self._handlers[type(event)](event)

    # ---------------- Published state ----------------

    def add_state_listener(self, fn: Callable[[MonitoringState], None]) -> Callable[[], None]:
        """Call fn with every new MonitoringState; returns the unsubscribe callable."""
        return self._state_listeners.subscribe(fn)

    @property
    def idle_progress_text(self) -> str:
        return f"{format_mm_ss(self.current_idle_time)} / {self.settings.inactivity_minutes}m"

    def snapshot(self) -> dict:
        """Point-in-time view for the control socket."""
        state = self.state
        memory = self.memory
        return {
            "state": state.to_dict(),
            "status": state.status_text,
            "state_age_s": round(now_s() - self.state_since, 3),
            "idle_s": round(self.current_idle_time, 3),
            "idle_progress": self.idle_progress_text,
            "auto_mute_reason": memory.auto_mute_reason.value if memory.auto_mute_reason else None,
            "manually_muted": memory.was_manually_muted_before_auto_mute,
            "screen_locked": memory.is_screen_locked,
            "settings": self.settings.to_dict(),
        }

    def _set_state(self, new: MonitoringState):
        old = self.state
        if new == old:
            return
        self.state = new
        self.state_since = now_s()
        # Idle(t) changes every tick; only log when the variant or reason changes.
        if type(new) is not type(old) or getattr(new, "reason", None) != getattr(old, "reason", None):
            self.logger.emit("state_changed", state=new.status_text, previous=old.status_text)
        self._state_listeners.emit(new)

    def _idle_display_state(self) -> MonitoringState:
        """State implied by the current lock and idle facts when nothing is auto-muted."""
        if self.memory.is_screen_locked:
            return ScreenLocked()
        if self.current_idle_time > 0:
            return Idle(elapsed_seconds=self.current_idle_time)
        return Active()

    # ---------------- Device access ----------------

    def _query_muted(self) -> Optional[bool]:
        try:
            return bool(self.device.is_muted())
        except AudioError as e:
            self._device_error("query", e)
            return None

    def _apply_mute(self, muted: bool) -> bool:
        try:
            self.device.set_muted(muted)
        except AudioError as e:
            self._device_error("mute" if muted else "unmute", e)
            return False
        if self.notifier is not None:
            self.notifier.clear()
        return True

    def _device_error(self, op: str, err: AudioError):
        self.logger.emit("device_error", op=op, kind=err.kind, error=str(err), status=err.status)
        if self.notifier is not None:
            self.notifier.device_error(err.kind, f"Failed to {op} audio: {err}")

    # ---------------- Monitoring on/off ----------------

    def _start_monitoring(self):
        self._stop_sources()
        self.memory.reset()
        self.current_idle_time = 0.0
        self.inactivity.update_threshold(self.settings.inactivity_threshold_s)
        self._source_unsubs = [
            self.inactivity.subscribe(self.post),
            self.session_lock.subscribe(self.post),
        ]
        self.inactivity.start()
        self.session_lock.start()
        self._monitoring = True
        self.logger.emit("enabled", threshold_s=self.settings.inactivity_threshold_s)
        self._set_state(Active())

    def _stop_monitoring(self):
        self._stop_sources()
        self.memory.reset()
        self.current_idle_time = 0.0
        self._monitoring = False
        self.logger.emit("disabled")
        self._set_state(Disabled())

    def _stop_sources(self):
        for unsubscribe in self._source_unsubs:
            unsubscribe()
        self._source_unsubs = []
        self.inactivity.stop()
        self.session_lock.stop()

    # ---------------- Event handlers ----------------

    def _on_enabled_changed(self, ev: EnabledChanged):
        enabled = bool(ev.enabled)
        self.settings.is_enabled = enabled
        if enabled == self._monitoring:
            return
        if enabled:
            self._start_monitoring()
        else:
            self._stop_monitoring()

    def _on_toggle_requested(self, ev: ToggleRequested):
        self._on_enabled_changed(EnabledChanged(enabled=not self.settings.is_enabled))

    def _on_setting_changed(self, ev: SettingChanged):
        if ev.name == "is_enabled":
            try:
                enabled = coerce_setting(ev.name, ev.value)
            except ValueError as e:
                self.logger.emit("setting_rejected", name=ev.name, value=ev.value, error=str(e))
                return
            self._on_enabled_changed(EnabledChanged(enabled=enabled))
            return
        try:
            value = coerce_setting(ev.name, ev.value)
        except KeyError:
            self.logger.emit("setting_rejected", name=ev.name, value=ev.value, error="unknown setting")
            return
        except ValueError as e:
            self.logger.emit("setting_rejected", name=ev.name, value=ev.value, error=str(e))
            return
        old = getattr(self.settings, ev.name)
        setattr(self.settings, ev.name, value)
        if old != value:
            self.logger.emit("setting_changed", name=ev.name, value=value, previous=old)
        if ev.name == "inactivity_minutes":
            self.inactivity.update_threshold(self.settings.inactivity_threshold_s)

    def _on_idle_time_updated(self, ev: IdleTimeUpdated):
        if not self.settings.is_enabled:
            return
        self.current_idle_time = float(ev.seconds)
        if self.memory.auto_mute_reason is None and not self.memory.is_screen_locked:
            self._set_state(self._idle_display_state())

    def _on_threshold_reached(self, ev: ThresholdReached):
        if not (self.settings.is_enabled and self.settings.mute_on_inactivity):
            return
        if self.memory.auto_mute_reason is not None:
            return

        already_muted = self._query_muted()
        if already_muted is None:
            return
        if already_muted:
            self.memory.was_manually_muted_before_auto_mute = True
            self.logger.emit("manual_mute_respected", trigger=MuteReason.INACTIVITY.value)
            return
        if not self._apply_mute(True):
            return

        self.memory.was_manually_muted_before_auto_mute = False
        self.memory.auto_mute_reason = MuteReason.INACTIVITY
        self.logger.emit("muted", reason=MuteReason.INACTIVITY.value, idle_s=round(self.current_idle_time, 3))
        if not self.memory.is_screen_locked:
            self._set_state(Muted(reason=MuteReason.INACTIVITY))

    def _on_activity_resumed(self, ev: ActivityResumed):
        if not self.settings.is_enabled:
            return
        self.current_idle_time = 0.0
        memory = self.memory
        reason = memory.auto_mute_reason

        if (reason is MuteReason.INACTIVITY and self.settings.unmute_on_activity
                and not memory.was_manually_muted_before_auto_mute):
            if self._apply_mute(False):
                memory.clear_auto_mute()
                self.logger.emit("unmuted", reason=reason.value)
                self._set_state(self._idle_display_state())
            elif not memory.is_screen_locked:
                self._set_state(Muted(reason=reason))
            return

        if memory.is_screen_locked:
            self._set_state(ScreenLocked())
        elif reason is not None:
            self._set_state(Muted(reason=reason))
        else:
            self._set_state(Active())

    def _on_locked(self, ev: Locked):
        memory = self.memory
        memory.is_screen_locked = True
        if not (self.settings.is_enabled and self.settings.mute_on_screen_lock):
            self._set_state(ScreenLocked())
            return

        # First writer wins: an existing auto-mute keeps its reason.
        if memory.auto_mute_reason is None:
            already_muted = self._query_muted()
            if already_muted:
                memory.was_manually_muted_before_auto_mute = True
                self.logger.emit("manual_mute_respected", trigger=MuteReason.SCREEN_LOCK.value)
            elif already_muted is not None and self._apply_mute(True):
                memory.was_manually_muted_before_auto_mute = False
                memory.auto_mute_reason = MuteReason.SCREEN_LOCK
                self.logger.emit("muted", reason=MuteReason.SCREEN_LOCK.value)

        self._set_state(ScreenLocked())

    def _on_unlocked(self, ev: Unlocked):
        memory = self.memory
        memory.is_screen_locked = False
        if not self.settings.is_enabled:
            self._set_state(Active())
            return

        reason = memory.auto_mute_reason
        if (reason is MuteReason.SCREEN_LOCK and self.settings.unmute_on_unlock
                and not memory.was_manually_muted_before_auto_mute):
            if self._apply_mute(False):
                memory.clear_auto_mute()
                self.logger.emit("unmuted", reason=reason.value)
            self._set_state(Active())
            return

        if reason is MuteReason.INACTIVITY:
            # Idle-triggered mutes persist through unlock.
            self._set_state(Muted(reason=reason))
        else:
            self._set_state(Active())

    def _on_external_mute_changed(self, ev: ExternalMuteChanged):
        memory = self.memory
        if ev.muted or memory.auto_mute_reason is None:
            return
        # Events are read by the listener thread; a stale "unmuted" may arrive
        # after this coordinator has muted again.
        if self._query_muted():
            self.logger.debug("stale_mute_event", muted=ev.muted)
            return
        reason = memory.auto_mute_reason
        memory.clear_auto_mute()
        self.logger.emit("mute_relinquished", reason=reason.value)
        self._set_state(self._idle_display_state())

    def _on_default_device_changed(self, ev: DefaultDeviceChanged):
        memory = self.memory
        if memory.auto_mute_reason is None or memory.was_manually_muted_before_auto_mute:
            return
        if self._apply_mute(True):
            self.logger.emit("mute_reasserted", reason=memory.auto_mute_reason.value, device=ev.device)
