"""
Data models for window snapshots and restoration.

Persisted models use Pydantic v2 with camelCase aliases so the stored JSON
stays stable across renames. Runtime-only values (live windows, displays,
sessions, inbound events) are plain dataclasses.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums
# ============================================================================

class WindowLayer(str, Enum):
    """Stacking layer reported by the window enumerator"""
    NORMAL = "normal"
    FULLSCREEN = "fullscreen"
    HIDDEN = "hidden"


class MatchRule(str, Enum):
    """Matching rule that paired a saved record with a live window"""
    EXACT = "exact"
    TITLE = "title"
    SIZE = "size"
    APP = "app"


class RestoreMode(str, Enum):
    """Restoration pass flavor"""
    AUTO = "auto"
    MANUAL = "manual"


# ============================================================================
# Geometry
# ============================================================================

class Size(BaseModel):
    """Window size in logical pixels"""
    model_config = ConfigDict(frozen=True)

    width: float
    height: float


class Frame(BaseModel):
    """Window or display rectangle, origin at top-left"""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float

    @property
    def size(self) -> Size:
        return Size(width=self.width, height=self.height)

    def origin_distance(self, other: "Frame") -> float:
        """Euclidean distance between the two origins."""
        return math.hypot(self.x - other.x, self.y - other.y)

    def size_within(self, other: Size, tolerance: float) -> bool:
        return (abs(self.width - other.width) <= tolerance
                and abs(self.height - other.height) <= tolerance)

    def intersects(self, other: "Frame") -> bool:
        return (self.x < other.x + other.width
                and other.x < self.x + self.width
                and self.y < other.y + other.height
                and other.y < self.y + self.height)

    def contains_point(self, x: float, y: float) -> bool:
        return (self.x <= x < self.x + self.width
                and self.y <= y < self.y + self.height)


# ============================================================================
# Persisted snapshot data
# ============================================================================

class WindowIdentity(BaseModel):
    """Salted digests identifying a window without storing its names"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    app_name_hash: str = Field(alias="appNameHash")
    title_hash: Optional[str] = Field(default=None, alias="titleHash")


class WindowRecord(BaseModel):
    """One saved window inside a display bucket"""
    model_config = ConfigDict(populate_by_name=True)

    identity: WindowIdentity
    size: Size
    frame: Frame
    source_window_number: Optional[int] = Field(default=None, alias="sourceWindowNumber")


DisplayBuckets = Dict[str, Dict[str, WindowRecord]]


class SnapshotSlot(BaseModel):
    """Named bucket of saved window layouts, keyed by display then window key"""
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(ge=0)
    name: Optional[str] = None
    windows: DisplayBuckets = Field(default_factory=dict)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def window_count(self) -> int:
        return sum(len(bucket) for bucket in self.windows.values())

    @property
    def is_empty(self) -> bool:
        return self.window_count == 0

    def replace_windows(self, windows: DisplayBuckets, now: Optional[datetime] = None) -> None:
        """Replace the whole window map; captures never merge."""
        now = now or datetime.now(timezone.utc)
        self.windows = windows
        if self.created_at is None:
            self.created_at = now
        self.updated_at = now

    def clear(self) -> None:
        self.windows = {}
        self.updated_at = None


# ============================================================================
# Runtime values
# ============================================================================

@dataclass(frozen=True)
class LiveWindow:
    """A window as currently reported by the window enumerator."""
    owner_name: str
    owner_process_id: Optional[int]
    window_number: Optional[int]
    frame: Frame
    layer: WindowLayer = WindowLayer.NORMAL
    title: Optional[str] = None


@dataclass(frozen=True)
class Display:
    """A connected display."""
    id: str
    frame: Frame
    is_main: bool = False


@dataclass
class RestorationSession:
    """Retry bookkeeping for one stabilization cycle.

    Created once per cycle and handed from the stabilization detector to the
    restoration executor, so the retry counter travels with the cycle.
    """
    slot_index: int
    attempt: int = 0
    max_attempts: int = 2
    retry_delay: float = 3.0

    @property
    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts


@dataclass
class MatchResult:
    """A saved record paired with a live window."""
    window_key: str
    record: WindowRecord
    live: LiveWindow
    rule: MatchRule
    distance: float = 0.0


@dataclass
class RestoreOutcome:
    """Result of one restoration pass."""
    mode: RestoreMode
    slot_index: int
    restored_count: int = 0
    saved_count: int = 0
    skipped: int = 0
    failed: int = 0
    ran: bool = True
    display_count: int = 0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "slot": self.slot_index,
            "displays": self.display_count,
            "restored": self.restored_count,
            "saved": self.saved_count,
            "skipped": self.skipped,
            "failed": self.failed,
            "ran": self.ran,
        }


# ============================================================================
# Inbound events
# ============================================================================

@dataclass(frozen=True)
class TopologyChanged:
    """Display added, removed or reconfigured."""
    screen_count: Optional[int] = None


@dataclass(frozen=True)
class SystemWillSleep:
    pass


@dataclass(frozen=True)
class SystemDidWake:
    pass


@dataclass(frozen=True)
class ScreensDidSleep:
    pass


@dataclass(frozen=True)
class ScreensDidWake:
    pass


@dataclass(frozen=True)
class ConfigChanged:
    """Configuration file was reloaded."""
    config: Any = None

