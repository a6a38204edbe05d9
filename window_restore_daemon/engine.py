"""Window restore engine.

Coordinates capture, persistence, stabilization and restoration on a single
asyncio timeline. Topology and sleep/wake notifications enter through one
typed event queue; collaborator calls are serialized by one lock so a capture
never interleaves with a restoration pass.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import TimingConfig, load_config, save_config
from .constants import AUTO_SLOT
from .diagnostics import AppNameMasker, VerboseLog
from .errors import CollaboratorUnavailable, ConfigError, EncodingFailure, InvalidSlotError
from .identity import IdentityHasher, load_or_create_salt
from .interfaces import (
    Clock,
    DisplayProvider,
    KeyValueStore,
    Notifier,
    TopologyWatcher,
    WindowController,
    WindowEnumerator,
)
from .layout.capture import SnapshotCapture
from .layout.matcher import WindowMatcher
from .layout.persistence import SnapshotStore
from .layout.restore import RestorationExecutor
from .models import (
    ConfigChanged,
    Display,
    RestorationSession,
    RestoreMode,
    RestoreOutcome,
    ScreensDidSleep,
    ScreensDidWake,
    SnapshotSlot,
    SystemDidWake,
    SystemWillSleep,
    TopologyChanged,
)
from .pause_gate import PauseGate
from .stabilization import DetectorState, DisplayStabilizationDetector
from .timers import TimerCategory, TimerManager

logger = logging.getLogger(__name__)


class WindowRestoreEngine:
    """Owns slots, timers and the stabilization cycle."""

    def __init__(self,
                 config: TimingConfig,
                 enumerator: WindowEnumerator,
                 controller: WindowController,
                 display_provider: DisplayProvider,
                 kv_store: KeyValueStore,
                 clock: Clock,
                 notifier: Optional[Notifier] = None,
                 topology_watcher: Optional[TopologyWatcher] = None,
                 config_path: Optional[Path] = None):
        self.config = config
        self.config_path = config_path
        self.enumerator = enumerator
        self.controller = controller
        self.display_provider = display_provider
        self.clock = clock
        self.notifier = notifier
        self.topology_watcher = topology_watcher

        self.timers = TimerManager(clock)
        self.pause = PauseGate(clock.now)
        self.masker = AppNameMasker(config.mask_app_names_in_log)
        self.verbose = VerboseLog(config.verbose_logging)

        salt, self.salt_persistent = load_or_create_salt(kv_store)
        self.hasher = IdentityHasher(salt)
        self.store = SnapshotStore(
            kv_store,
            slot_count=config.user_slot_count + 1,
            persistence_disabled=not self.salt_persistent,
        )
        if config.disable_persistence:
            # Data left by an earlier session goes as soon as privacy mode is on
            self.store.set_persistence_disabled(True)
        self._privacy_override: Optional[bool] = None

        self.capture = SnapshotCapture(self.hasher, self.verbose, self.masker)
        self.matcher = WindowMatcher(self.hasher, self.verbose, self.masker, config.size_tolerance)
        self.executor = RestorationExecutor(controller, self.matcher, config, self.verbose, self.masker)
        self.detector = DisplayStabilizationDetector(
            clock=clock,
            timers=self.timers,
            pause=self.pause,
            config=config,
            restore_pass=self.restore_windows_if_needed,
            slot_for_session=self._auto_restore_slot,
            on_stable=self._resume_monitoring,
        )

        self.slots: List[SnapshotSlot] = [SnapshotSlot(id=i) for i in range(config.user_slot_count + 1)]
        self.active_slot = 1
        self.monitoring_suspended = False
        self.initial_snapshot_taken = False
        self.last_restore_time: Optional[float] = None
        self.last_auto_snapshot_time: Optional[float] = None

        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._run_task: Optional[asyncio.Task] = None
        self.running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load persisted slots, arm timers and begin consuming events."""
        await self._load_persisted()
        self.active_slot = self.store.load_active_slot()

        displays = await self._try_displays()
        if displays is not None:
            self.detector.screen_count = len(displays)
            logger.info(f"Connected displays: {len(displays)}")

        self._start_capture_timers()
        self.timers.start(
            TimerCategory.INITIAL_CAPTURE,
            self.config.initial_snapshot_delay,
            self._initial_capture,
        )
        if self.config.restore_on_launch:
            self.timers.start(TimerCategory.LAUNCH_RESTORE, self.config.restore_delay, self._launch_restore)

        if self.topology_watcher is not None:
            await self.topology_watcher.start(self.post)

        self.running = True
        self._run_task = asyncio.create_task(self._run())
        logger.info("Window restore engine started")

    async def stop(self) -> None:
        """Stop timers and the event loop; purge everything in privacy mode."""
        self.running = False
        self.timers.cancel_all()

        if self.topology_watcher is not None:
            await self.topology_watcher.stop()

        if self._run_task is not None:
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
            self._run_task = None

        if self.config.disable_persistence:
            self.store.clear()
            for slot in self.slots:
                slot.clear()
            logger.info("Privacy mode: snapshots cleared on shutdown")

        logger.info("Window restore engine stopped")

    def post(self, event: Any) -> None:
        """Queue an inbound event. Must be called on the engine's loop."""
        self._queue.put_nowait(event)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)

    async def dispatch(self, event: Any) -> None:
        """Route one typed event."""
        if isinstance(event, TopologyChanged):
            screen_count = event.screen_count
            if screen_count is None:
                displays = await self._try_displays()
                screen_count = len(displays) if displays is not None else None
            self.detector.signal(screen_count)

        elif isinstance(event, SystemWillSleep):
            logger.info("System going to sleep")
            if self.config.disable_monitoring_during_sleep:
                self._suspend_monitoring("system sleep")

        elif isinstance(event, SystemDidWake):
            # Monitoring resumes once the displays stabilize
            logger.info("System woke from sleep")

        elif isinstance(event, ScreensDidSleep):
            logger.info("Displays going to sleep")
            self._suspend_monitoring("display sleep")

        elif isinstance(event, ScreensDidWake):
            logger.info("Displays woke up")
            self._resume_monitoring()

        elif isinstance(event, ConfigChanged):
            await self.apply_config(event.config)

        else:
            logger.warning(f"Ignoring unknown event {event!r}")

    def _suspend_monitoring(self, reason: str) -> None:
        if not self.monitoring_suspended:
            logger.info(f"Monitoring suspended ({reason})")
        self.monitoring_suspended = True

    def _resume_monitoring(self) -> None:
        if self.monitoring_suspended:
            logger.info("Monitoring resumed")
        self.monitoring_suspended = False

    def is_paused(self) -> bool:
        return self.pause.is_paused() or self.monitoring_suspended

    # ------------------------------------------------------------------
    # Collaborator access
    # ------------------------------------------------------------------

    async def _try_displays(self) -> Optional[List[Display]]:
        try:
            return await self.display_provider.displays()
        except CollaboratorUnavailable as e:
            logger.error(e.message)
            return None

    async def _observe(self):
        displays = await self.display_provider.displays()
        windows = await self.enumerator.enumerate()
        return displays, windows

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def take_display_memory_snapshot(self) -> bool:
        """Refresh slot 0 in memory so a disconnect has a recent layout to return to."""
        if self.is_paused():
            return False
        if self.detector.state in (DetectorState.PENDING, DetectorState.STABLE,
                                   DetectorState.RESTORATION_SCHEDULED):
            # Windows are being evacuated or restored right now
            return False

        async with self._lock:
            try:
                displays, windows = await self._observe()
            except CollaboratorUnavailable as e:
                logger.warning(f"Display memory snapshot skipped: {e.message}")
                return False
            return self.capture.capture_auto_slot(self.slots[AUTO_SLOT], displays, windows)

    async def perform_auto_snapshot(self, reason: str) -> bool:
        """
        Capture into slot 0 and persist it.

        Args:
            reason: "initial", "periodic" or "post-connection", for logs

        Returns:
            True if slot 0 was replaced
        """
        if self.is_paused():
            logger.info(f"{reason} snapshot skipped: monitoring paused")
            return False

        async with self._lock:
            try:
                displays, windows = await self._observe()
            except CollaboratorUnavailable as e:
                logger.warning(f"{reason} snapshot skipped: {e.message}")
                return False

            if len(displays) < 2:
                logger.info(f"{reason} snapshot skipped: {len(displays)} display(s) connected")
                return False

            buckets = self.capture.capture_current_windows(displays, windows)
            captured = sum(len(bucket) for bucket in buckets.values())

            slot = self.slots[AUTO_SLOT]
            if (self.config.protect_existing_snapshot
                    and self._has_persisted_windows(AUTO_SLOT)
                    and captured < self.config.minimum_window_count):
                logger.info(
                    f"{reason} snapshot not saved: {captured} windows "
                    f"(minimum {self.config.minimum_window_count}) would replace the stored layout"
                )
                return False

            slot.replace_windows(buckets)
            self.last_auto_snapshot_time = self.clock.now()

        await self._persist()
        logger.info(f"{reason} snapshot: {captured} windows on {len(displays)} displays")
        return True

    def _has_persisted_windows(self, index: int) -> bool:
        count, _ = self.store.get_slot_info(index)
        return count > 0

    async def save_slot(self, index: int) -> Dict[str, Any]:
        """Capture every display into a user slot and persist it."""
        self._check_slot(index, allow_auto=False)
        if self.is_paused():
            return {"saved": False, "slot": index, "reason": "paused"}

        async with self._lock:
            displays, windows = await self._observe()
            slot = self.slots[index]
            self.capture.capture_manual_slot(slot, displays, windows)

        self.active_slot = index
        self.store.save_active_slot(index)
        await self._persist()

        logger.info(f"Saved {slot.window_count} windows to slot {index}")
        await self._notify("Layout saved", f"Slot {index}: {slot.window_count} windows")
        return {"saved": True, "slot": index, "windows": slot.window_count}

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _auto_restore_slot(self) -> int:
        if not self.slots[AUTO_SLOT].is_empty:
            return AUTO_SLOT
        return self.active_slot

    async def restore_windows_if_needed(self, session: RestorationSession) -> RestoreOutcome:
        """One automatic restoration pass for a stabilization cycle."""
        slot = self.slots[session.slot_index]
        if self.pause.is_paused():
            logger.info("Restoration skipped: paused")
            return RestoreOutcome(mode=RestoreMode.AUTO, slot_index=slot.id, ran=False)

        async with self._lock:
            try:
                displays, windows = await self._observe()
            except CollaboratorUnavailable as e:
                logger.error(f"Restoration pass {session.attempt + 1} could not observe windows: {e.message}")
                return RestoreOutcome(
                    mode=RestoreMode.AUTO,
                    slot_index=slot.id,
                    saved_count=slot.window_count,
                    display_count=self.detector.screen_count or 0,
                )
            outcome = await self.executor.restore_auto(slot, displays, windows)

        self.last_restore_time = self.clock.now()

        if outcome.ran and outcome.display_count >= 2 and (outcome.restored_count > 0 or outcome.saved_count == 0):
            self._schedule_post_connection_snapshot()
        if outcome.restored_count > 0:
            await self._notify("Windows restored", f"{outcome.restored_count} windows moved back")
        return outcome

    async def restore_slot(self, index: int) -> RestoreOutcome:
        """Manually restore a slot onto whichever of its displays are connected."""
        self._check_slot(index, allow_auto=True)
        slot = self.slots[index]
        if self.is_paused():
            logger.info(f"Restore of slot {index} skipped: paused")
            return RestoreOutcome(mode=RestoreMode.MANUAL, slot_index=index, ran=False)
        if slot.is_empty:
            logger.info(f"Slot {index} is empty, nothing to restore")
            return RestoreOutcome(mode=RestoreMode.MANUAL, slot_index=index, ran=False)

        async with self._lock:
            displays, windows = await self._observe()
            outcome = await self.executor.restore_manual(slot, displays, windows)

        await self._notify("Layout restored", f"Slot {index}: {outcome.restored_count}/{outcome.saved_count} windows")
        return outcome

    async def _launch_restore(self) -> None:
        displays = await self._try_displays()
        if displays is None or len(displays) < 2:
            logger.info("Restore on launch skipped: no external display connected")
            return
        if self.slots[self.active_slot].is_empty:
            logger.info("Restore on launch skipped: no saved layout")
            return
        logger.info(f"Restoring slot {self.active_slot} on launch")
        await self.restore_slot(self.active_slot)

    # ------------------------------------------------------------------
    # Slots and privacy
    # ------------------------------------------------------------------

    def _check_slot(self, index: Any, allow_auto: bool) -> None:
        lowest = AUTO_SLOT if allow_auto else 1
        if not isinstance(index, int) or isinstance(index, bool) or not lowest <= index < len(self.slots):
            raise InvalidSlotError(index, len(self.slots) - 1)

    def clear_slot(self, index: int) -> None:
        self._check_slot(index, allow_auto=True)
        self.slots[index].clear()
        self.store.clear_slot(index)
        logger.info(f"Cleared slot {index}")

    def clear_all(self) -> None:
        for slot in self.slots:
            slot.clear()
        self.store.clear()
        logger.info("Cleared all slots")

    def select_slot(self, index: int) -> None:
        self._check_slot(index, allow_auto=False)
        self.active_slot = index
        self.store.save_active_slot(index)
        logger.info(f"Active slot: {index}")

    def set_privacy_mode(self, enabled: bool) -> None:
        """Enable or disable persistence at runtime.

        Enabling purges stored snapshots at once. The choice is written to
        config.json and wins over reloads until the file agrees with it.
        """
        self._privacy_override = enabled
        self._apply_privacy(enabled)
        self._write_privacy_to_config(enabled)

    def _apply_privacy(self, enabled: bool) -> None:
        self.config.disable_persistence = enabled
        if not enabled and not self.salt_persistent:
            logger.warning("Persistence stays disabled: installation salt unavailable")
            self.store.set_persistence_disabled(True)
            return
        self.store.set_persistence_disabled(enabled)

    def _write_privacy_to_config(self, enabled: bool) -> None:
        if self.config_path is None:
            return
        try:
            on_disk = load_config(self.config_path, strict=True)
            save_config(on_disk.model_copy(update={"disable_persistence": enabled}), self.config_path)
        except (ConfigError, OSError) as e:
            logger.warning(f"Privacy mode not written to {self.config_path}: {e}")

    async def _persist(self) -> None:
        try:
            self.store.save_slots(self.slots)
        except EncodingFailure as e:
            logger.error(e.message)
            await self._notify("Snapshot not saved", e.message)

    async def _load_persisted(self) -> None:
        try:
            slots = self.store.load_slots()
        except EncodingFailure as e:
            logger.error(e.message)
            await self._notify("Saved layouts unreadable", e.message)
            return
        if slots is None:
            return
        self.slots = slots
        logger.info(f"Loaded {sum(s.window_count for s in slots)} saved windows")

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_capture_timers(self) -> None:
        self.timers.start(
            TimerCategory.DISPLAY_MEMORY,
            self.config.display_memory_interval,
            self.take_display_memory_snapshot,
            repeat=True,
        )
        if not self.config.enable_periodic_snapshot:
            self.timers.cancel(TimerCategory.PERIODIC_CAPTURE)
        elif self.initial_snapshot_taken:
            self._start_periodic_capture()

    def _start_periodic_capture(self) -> None:
        async def periodic() -> None:
            await self.perform_auto_snapshot("periodic")

        self.timers.start(
            TimerCategory.PERIODIC_CAPTURE,
            self.config.periodic_snapshot_interval,
            periodic,
            repeat=True,
        )

    async def _initial_capture(self) -> None:
        await self.perform_auto_snapshot("initial")
        self.initial_snapshot_taken = True
        if self.config.enable_periodic_snapshot and not self.timers.is_active(TimerCategory.PERIODIC_CAPTURE):
            self._start_periodic_capture()

    def _schedule_post_connection_snapshot(self) -> None:
        logger.info(f"Post-connection snapshot in {self.config.initial_snapshot_delay_minutes:.1f} min")
        self.timers.start(
            TimerCategory.INITIAL_CAPTURE,
            self.config.initial_snapshot_delay,
            self._initial_capture,
        )

    # ------------------------------------------------------------------
    # Configuration and status
    # ------------------------------------------------------------------

    async def apply_config(self, config: TimingConfig) -> None:
        """Swap in reloaded configuration and re-arm the capture timers."""
        if config is None:
            return
        if self._privacy_override is not None:
            if config.disable_persistence == self._privacy_override:
                self._privacy_override = None
            else:
                logger.info("Keeping privacy mode set at runtime over reloaded configuration")
                config = config.model_copy(update={"disable_persistence": self._privacy_override})
        privacy_changed = config.disable_persistence != self.config.disable_persistence

        self.config = config
        self.detector.config = config
        self.executor.config = config
        self.matcher.size_tolerance = config.size_tolerance
        self.verbose.enabled = config.verbose_logging
        self.masker.enabled = config.mask_app_names_in_log

        if privacy_changed:
            self._apply_privacy(config.disable_persistence)
        self._start_capture_timers()
        logger.info("Configuration applied")

    async def _notify(self, title: str, body: str) -> None:
        if self.notifier is None or not self.config.enable_notification:
            return
        await self.notifier.notify(title, body)

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "paused": self.pause.is_paused(),
            "pause_remaining": self.pause.remaining,
            "monitoring_suspended": self.monitoring_suspended,
            "privacy_mode": self.store.persistence_disabled,
            "active_slot": self.active_slot,
            "slots": [
                {
                    "id": slot.id,
                    "windows": slot.window_count,
                    "updated_at": slot.updated_at.isoformat() if slot.updated_at else None,
                }
                for slot in self.slots
            ],
            "detector": self.detector.to_dict(),
            "timers": self.timers.active(),
        }
