"""
Restoration executor

Moves matched windows back to their saved frames. Every window is verified
against the frame seen at enumeration time right before it is moved; a window
the user dragged in the meantime is left alone. Failures are per window and
never abort the batch.
"""

import logging
from typing import List, Set

from ..config import TimingConfig
from ..diagnostics import AppNameMasker, VerboseLog
from ..errors import CollaboratorUnavailable, ToleranceExceeded, WindowNotFound
from ..interfaces import WindowController
from ..models import (
    Display,
    LiveWindow,
    MatchResult,
    RestorationSession,
    RestoreMode,
    RestoreOutcome,
    SnapshotSlot,
)
from .capture import main_display
from .matcher import WindowMatcher

logger = logging.getLogger(__name__)


class RestorationExecutor:
    """Applies matcher results through the window controller."""

    def __init__(self, controller: WindowController, matcher: WindowMatcher, config: TimingConfig,
                 verbose: VerboseLog, masker: AppNameMasker):
        self.controller = controller
        self.matcher = matcher
        self.config = config
        self.verbose = verbose
        self.masker = masker

    async def restore_auto(self, slot: SnapshotSlot, displays: List[Display],
                           windows: List[LiveWindow]) -> RestoreOutcome:
        """
        Return windows to external displays after a reconnect.

        Only buckets of connected non-main displays are considered, and only
        windows currently sitting on the main display are moved. An exact
        match already elsewhere still claims its window.

        Args:
            slot: Slot to restore from
            displays: Connected displays
            windows: Fresh enumerator output

        Returns:
            Outcome; ``ran`` is False with fewer than two displays
        """
        outcome = RestoreOutcome(mode=RestoreMode.AUTO, slot_index=slot.id, display_count=len(displays))
        if len(displays) < 2:
            logger.info(f"Auto restore skipped: {len(displays)} display(s) connected")
            outcome.ran = False
            return outcome

        main = main_display(displays)
        claimed: Set[int] = set()

        for display in displays:
            if display is main:
                continue
            bucket = slot.windows.get(display.id)
            if not bucket:
                continue
            outcome.saved_count += len(bucket)

            for match in self.matcher.match(bucket, windows, claimed):
                live = match.live
                if not main.frame.contains_point(live.frame.x, live.frame.y):
                    outcome.skipped += 1
                    self.verbose(f"{self.masker.mask(live.owner_name)} is not on the main display, left in place")
                    continue
                await self._apply(match, self.config.position_tolerance, outcome)

        logger.info(
            f"Auto restore from slot {slot.id}: {outcome.restored_count}/{outcome.saved_count} restored"
        )
        return outcome

    async def restore_manual(self, slot: SnapshotSlot, displays: List[Display],
                             windows: List[LiveWindow]) -> RestoreOutcome:
        """Restore every bucket of a slot whose display is connected."""
        outcome = RestoreOutcome(mode=RestoreMode.MANUAL, slot_index=slot.id, display_count=len(displays))
        connected = {display.id for display in displays}
        claimed: Set[int] = set()

        for display_id in sorted(slot.windows):
            bucket = slot.windows[display_id]
            if not bucket:
                continue
            if display_id not in connected:
                self.verbose(f"Display {display_id} not connected, {len(bucket)} windows skipped")
                continue
            outcome.saved_count += len(bucket)

            for match in self.matcher.match(bucket, windows, claimed):
                if match.distance <= self.config.in_place_tolerance:
                    outcome.skipped += 1
                    continue
                await self._apply(match, self.config.manual_position_tolerance, outcome)

        logger.info(
            f"Manual restore from slot {slot.id}: {outcome.restored_count}/{outcome.saved_count} restored"
        )
        return outcome

    async def _apply(self, match: MatchResult, tolerance: float, outcome: RestoreOutcome) -> None:
        live = match.live
        name = self.masker.mask(live.owner_name)
        try:
            current = await self.controller.get_frame(live.owner_process_id, live.window_number)
            drift = current.origin_distance(live.frame)
            if drift > tolerance:
                raise ToleranceExceeded(match.window_key[:12], drift, tolerance)

            target = match.record.frame
            await self.controller.set_frame(live.owner_process_id, live.window_number, target)
            outcome.restored_count += 1
            self.verbose(
                f"Moved {name} ({match.rule.value}) to ({target.x:.0f}, {target.y:.0f}) "
                f"{target.width:.0f}x{target.height:.0f}"
            )
        except ToleranceExceeded as e:
            outcome.skipped += 1
            logger.info(f"{name}: {e.message}")
        except WindowNotFound as e:
            outcome.failed += 1
            logger.warning(f"{name}: {e.message}")
        except CollaboratorUnavailable as e:
            outcome.failed += 1
            logger.error(f"{name}: {e.message}")

    @staticmethod
    def needs_retry(outcome: RestoreOutcome, session: RestorationSession) -> bool:
        """Nothing moved although saved windows exist for the connected displays."""
        return (outcome.ran
                and outcome.restored_count == 0
                and outcome.saved_count > 0
                and outcome.display_count >= 2
                and session.can_retry)
