"""Display stabilization detector.

Display topology changes arrive in bursts while outputs flicker, wake or get
renegotiated. The detector waits for a quiet period before it lets a single
restoration pass run, then absorbs the echo of that pass with a cooldown.

    Idle -> Pending -> Stable -> RestorationScheduled -> CooldownActive -> Idle
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from .config import TimingConfig
from .interfaces import Clock, PauseState
from .layout.restore import RestorationExecutor
from .models import RestorationSession, RestoreOutcome
from .timers import TimerCategory, TimerManager

logger = logging.getLogger(__name__)


class DetectorState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    STABLE = "stable"
    RESTORATION_SCHEDULED = "restoration_scheduled"
    COOLDOWN_ACTIVE = "cooldown_active"


RestorePass = Callable[[RestorationSession], Awaitable[RestoreOutcome]]


class DisplayStabilizationDetector:
    """Debounces topology signals into restoration passes with bounded retries."""

    def __init__(self, clock: Clock, timers: TimerManager, pause: PauseState,
                 config: TimingConfig, restore_pass: RestorePass,
                 slot_for_session: Callable[[], int],
                 on_stable: Optional[Callable[[], None]] = None):
        """
        Args:
            clock: Coordination clock
            timers: Shared timer manager
            pause: Pause gate
            config: Timing configuration
            restore_pass: Runs one automatic restoration pass
            slot_for_session: Picks the slot a new cycle restores from
            on_stable: Called when a cycle settles
        """
        self.clock = clock
        self.timers = timers
        self.pause = pause
        self.config = config
        self.restore_pass = restore_pass
        self.slot_for_session = slot_for_session
        self.on_stable = on_stable

        self.state = DetectorState.IDLE
        self.event_time: Optional[float] = None
        self.session: Optional[RestorationSession] = None
        self.screen_count: Optional[int] = None
        self.passes = 0
        self.last_outcome: Optional[RestoreOutcome] = None
        self._cycle = 0
        self._pass_ran = False

    def signal(self, screen_count: Optional[int] = None) -> None:
        """Handle one topology signal."""
        increased = (screen_count is not None
                     and self.screen_count is not None
                     and screen_count > self.screen_count)
        if screen_count is not None:
            self.screen_count = screen_count

        if self.state == DetectorState.COOLDOWN_ACTIVE:
            if not increased:
                logger.debug("Topology signal absorbed by cooldown")
                return
            logger.info("Screen count increased, cooldown cut short")
            self.timers.cancel(TimerCategory.COOLDOWN)

        if self.state == DetectorState.PENDING:
            self.event_time = self.clock.now()
            return

        self.timers.cancel(TimerCategory.RESTORE)
        self.timers.cancel(TimerCategory.FALLBACK)
        self.timers.cancel(TimerCategory.RETRY)

        self._cycle += 1
        self._pass_ran = False
        self.event_time = self.clock.now()
        self.session = RestorationSession(
            slot_index=self.slot_for_session(),
            max_attempts=self.config.max_restore_attempts,
            retry_delay=self.config.retry_delay,
        )
        self.state = DetectorState.PENDING
        self.timers.start(TimerCategory.STABILIZATION_POLL, self.config.poll_interval, self._poll, repeat=True)
        logger.info(f"Display change detected (cycle {self._cycle}), waiting for stabilization")

    async def _poll(self) -> None:
        if self.state != DetectorState.PENDING:
            self.timers.cancel(TimerCategory.STABILIZATION_POLL)
            return
        if self.pause.is_paused():
            return

        elapsed = self.clock.now() - self.event_time
        if elapsed < self.config.stabilization_delay:
            return

        self.timers.cancel(TimerCategory.STABILIZATION_POLL)
        self.state = DetectorState.STABLE
        if self.on_stable is not None:
            self.on_stable()
        logger.info(f"Displays stable for {elapsed:.1f}s, restoring in {self.config.restore_delay:.1f}s")

        self.state = DetectorState.RESTORATION_SCHEDULED
        self.timers.start(TimerCategory.RESTORE, self.config.restore_delay, self._fire_restore)
        self.timers.start(
            TimerCategory.FALLBACK,
            self.config.restore_delay + self.config.fallback_wait,
            self._fire_fallback,
        )

    async def _fire_restore(self) -> None:
        if self.pause.is_paused():
            logger.info("Restoration deferred: monitoring paused")
            return
        await self._run_pass()

    async def _fire_fallback(self) -> None:
        if self._pass_ran:
            return
        if self.pause.is_paused():
            self.timers.start(TimerCategory.FALLBACK, self.config.fallback_wait, self._fire_fallback)
            return
        logger.info("Fallback timer forcing restoration")
        await self._run_pass()

    async def _fire_retry(self) -> None:
        if self.pause.is_paused():
            logger.info("Retry dropped: monitoring paused")
            self._enter_cooldown()
            return
        await self._run_pass()

    async def _run_pass(self) -> None:
        cycle = self._cycle
        session = self.session
        self._pass_ran = True
        self.timers.cancel(TimerCategory.FALLBACK)

        outcome = await self.restore_pass(session)
        self.passes += 1
        self.last_outcome = outcome

        if cycle != self._cycle:
            return

        if RestorationExecutor.needs_retry(outcome, session):
            session.attempt += 1
            logger.info(
                f"Restored 0 of {outcome.saved_count} windows, retry {session.attempt}/{session.max_attempts} "
                f"in {session.retry_delay:.1f}s"
            )
            self.timers.start(TimerCategory.RETRY, session.retry_delay, self._fire_retry)
            return

        if outcome.ran and outcome.restored_count == 0 and outcome.saved_count > 0:
            logger.warning(f"Giving up after {session.attempt + 1} restoration passes")
        self._enter_cooldown()

    def _enter_cooldown(self) -> None:
        self.state = DetectorState.COOLDOWN_ACTIVE
        self.session = None
        self.timers.start(TimerCategory.COOLDOWN, self.config.cooldown, self._end_cooldown)

    async def _end_cooldown(self) -> None:
        if self.state == DetectorState.COOLDOWN_ACTIVE:
            self.state = DetectorState.IDLE

    def reset(self) -> None:
        """Drop any cycle in flight."""
        for category in (TimerCategory.STABILIZATION_POLL, TimerCategory.RESTORE,
                         TimerCategory.FALLBACK, TimerCategory.RETRY, TimerCategory.COOLDOWN):
            self.timers.cancel(category)
        self._cycle += 1
        self.state = DetectorState.IDLE
        self.session = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "event_time": self.event_time,
            "passes": self.passes,
            "attempt": self.session.attempt if self.session else None,
            "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
        }
