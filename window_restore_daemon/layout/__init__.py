"""Snapshot capture, persistence, matching and restoration."""

from .capture import SnapshotCapture
from .matcher import WindowMatcher
from .persistence import SnapshotStore
from .restore import RestorationExecutor

__all__ = [
    "SnapshotCapture",
    "WindowMatcher",
    "SnapshotStore",
    "RestorationExecutor",
]
