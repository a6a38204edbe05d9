"""
Named timers on the coordination timeline.

Each category holds at most one pending timer. Starting a category cancels
its pending instance first, which is what makes the stabilization poll,
restore, fallback and retry timers debounce naturally.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from .interfaces import Clock, TimerHandle

logger = logging.getLogger(__name__)


class TimerCategory(str, Enum):
    STABILIZATION_POLL = "stabilization_poll"
    RESTORE = "restore"
    FALLBACK = "fallback"
    RETRY = "retry"
    COOLDOWN = "cooldown"
    DISPLAY_MEMORY = "display_memory"
    INITIAL_CAPTURE = "initial_capture"
    PERIODIC_CAPTURE = "periodic_capture"
    LAUNCH_RESTORE = "launch_restore"


class _Timer:
    def __init__(self, category: TimerCategory, delay: float, repeat: bool):
        self.category = category
        self.delay = delay
        self.repeat = repeat
        self.handle: Optional[TimerHandle] = None


class TimerManager:
    """Starts, cancels and re-arms timers by category."""

    def __init__(self, clock: Clock):
        self._clock = clock
        self._timers: Dict[TimerCategory, _Timer] = {}

    def start(self, category: TimerCategory, delay: float,
              action: Callable[[], Awaitable[None]], repeat: bool = False) -> None:
        """Schedule ``action`` after ``delay`` seconds, replacing any pending timer.

        Args:
            category: Timer category
            delay: Seconds until the first firing
            action: Coroutine function to run
            repeat: Re-arm with the same delay after each firing
        """
        self.cancel(category)
        self._arm(_Timer(category, delay, repeat), action)

    def _arm(self, timer: _Timer, action: Callable[[], Awaitable[None]]) -> None:
        async def fire() -> None:
            if self._timers.get(timer.category) is not timer:
                return
            if timer.repeat:
                self._arm(timer, action)
            else:
                del self._timers[timer.category]
            try:
                await action()
            except Exception as e:
                logger.error(f"Timer {timer.category.value} failed: {e}", exc_info=True)

        self._timers[timer.category] = timer
        timer.handle = self._clock.schedule(timer.delay, fire)

    def cancel(self, category: TimerCategory) -> bool:
        timer = self._timers.pop(category, None)
        if timer is None:
            return False
        if timer.handle is not None:
            timer.handle.cancel()
        return True

    def cancel_all(self) -> None:
        for category in list(self._timers):
            self.cancel(category)

    def is_active(self, category: TimerCategory) -> bool:
        return category in self._timers

    def active(self) -> list:
        return sorted(category.value for category in self._timers)
