"""
Snapshot capture

Groups the enumerator's normal-layer windows by display and turns them into
salted WindowRecords. Fullscreen and hidden windows are not at the normal
layer and are never captured.
"""

import logging
from typing import List, Optional

from ..diagnostics import AppNameMasker, VerboseLog
from ..identity import IdentityHasher
from ..models import (
    Display,
    DisplayBuckets,
    LiveWindow,
    SnapshotSlot,
    WindowLayer,
    WindowRecord,
)

logger = logging.getLogger(__name__)


def main_display(displays: List[Display]) -> Optional[Display]:
    for display in displays:
        if display.is_main:
            return display
    return displays[0] if displays else None


def display_for_window(displays: List[Display], window: LiveWindow) -> Optional[Display]:
    """First display whose frame intersects the window."""
    for display in displays:
        if window.frame.intersects(display.frame):
            return display
    return None


class SnapshotCapture:
    """Builds display buckets from live windows."""

    def __init__(self, hasher: IdentityHasher, verbose: VerboseLog, masker: AppNameMasker):
        self.hasher = hasher
        self.verbose = verbose
        self.masker = masker

    def capture_current_windows(self, displays: List[Display], windows: List[LiveWindow]) -> DisplayBuckets:
        """
        Capture all normal-layer windows, bucketed by display.

        Args:
            displays: Connected displays
            windows: Enumerator output

        Returns:
            Mapping of display ID to window key to record; every display has a bucket
        """
        buckets: DisplayBuckets = {display.id: {} for display in displays}
        unnumbered = 0

        for window in windows:
            if window.layer != WindowLayer.NORMAL:
                continue
            display = display_for_window(displays, window)
            if display is None:
                self.verbose(f"{self.masker.mask(window.owner_name)} is off-screen, not captured")
                continue

            identity = self.hasher.identity_for(window)
            key = self.hasher.window_key(identity, window.window_number, unnumbered)
            if window.window_number is None:
                unnumbered += 1

            buckets[display.id][key] = WindowRecord(
                identity=identity,
                size=window.frame.size,
                frame=window.frame,
                source_window_number=window.window_number,
            )
            self.verbose(
                f"Captured {self.masker.mask(window.owner_name)} on {display.id} at "
                f"({window.frame.x:.0f}, {window.frame.y:.0f}) {window.frame.width:.0f}x{window.frame.height:.0f}"
            )

        return buckets

    def capture_auto_slot(self, slot: SnapshotSlot, displays: List[Display], windows: List[LiveWindow]) -> bool:
        """
        Rebuild the automatic slot.

        Skipped with fewer than two displays, so a disconnect never wipes the
        external layout. If a connected external display comes back with an
        empty bucket (windows already evacuated during a flicker), its previous
        bucket is kept instead.

        Returns:
            True if the slot was rebuilt
        """
        if len(displays) < 2:
            logger.debug(f"Auto capture skipped: {len(displays)} display(s) connected")
            return False

        main = main_display(displays)
        backup = {
            display_id: bucket
            for display_id, bucket in slot.windows.items()
            if main is None or display_id != main.id
        }

        fresh = self.capture_current_windows(displays, windows)
        for display in displays:
            if display is main:
                continue
            if not fresh.get(display.id) and backup.get(display.id):
                fresh[display.id] = backup[display.id]
                self.verbose(f"Kept previous {len(backup[display.id])} windows for empty display {display.id}")

        slot.replace_windows(fresh)
        return True

    def capture_manual_slot(self, slot: SnapshotSlot, displays: List[Display], windows: List[LiveWindow]) -> None:
        slot.replace_windows(self.capture_current_windows(displays, windows))
