"""Pause gate consulted before every capture and restoration."""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PauseGate:
    """Boolean pause flag with an optional expiry.

    An expired pause clears itself the next time it is queried.
    """

    def __init__(self, now: Callable[[], float]):
        self._now = now
        self._paused = False
        self._until: Optional[float] = None
        self.reason: Optional[str] = None

    def pause(self, duration: Optional[float] = None, reason: str = "user") -> None:
        self._paused = True
        self._until = self._now() + duration if duration is not None else None
        self.reason = reason
        if duration is not None:
            logger.info(f"Paused ({reason}) for {duration:.0f}s")
        else:
            logger.info(f"Paused ({reason})")

    def resume(self) -> None:
        if self._paused:
            logger.info(f"Resumed (was paused by {self.reason})")
        self._paused = False
        self._until = None
        self.reason = None

    def is_paused(self) -> bool:
        if self._paused and self._until is not None and self._now() >= self._until:
            logger.info("Pause expired")
            self.resume()
        return self._paused

    @property
    def remaining(self) -> Optional[float]:
        if not self.is_paused() or self._until is None:
            return None
        return max(0.0, self._until - self._now())
