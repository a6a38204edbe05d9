"""Sway (i3ipc) collaborators."""

from .adapters import SwayDisplayProvider, SwayWindowController, SwayWindowEnumerator
from .topology import SwayTopologyWatcher

__all__ = [
    "SwayDisplayProvider",
    "SwayWindowController",
    "SwayWindowEnumerator",
    "SwayTopologyWatcher",
]
