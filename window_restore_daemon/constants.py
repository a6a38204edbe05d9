"""Storage keys, slot numbering and filesystem locations."""

import os
from pathlib import Path

APP_NAME = "window-restore"

# Key-value store keys
SLOTS_KEY = "snapshot.slots"
SALT_KEY = "snapshot.salt"
ACTIVE_SLOT_KEY = "snapshot.activeSlot"

# Keys written by earlier generations of the snapshot format
LEGACY_UNSALTED_KEY = "manualSnapshotDataV2"
LEGACY_PLAINTEXT_KEY = "manualSnapshotData"
LEGACY_TIMESTAMP_KEY = "manualSnapshotTimestamp"

LEGACY_KEYS = (
    LEGACY_UNSALTED_KEY,
    LEGACY_PLAINTEXT_KEY,
    LEGACY_TIMESTAMP_KEY,
)

# Slot 0 is written by automatic capture only
AUTO_SLOT = 0
DEFAULT_USER_SLOT_COUNT = 5

SALT_BYTES = 32

VERBOSE_LOGGER_NAME = "window_restore_daemon.verbose"


def _xdg_dir(env_var: str, fallback: Path) -> Path:
    value = os.environ.get(env_var)
    return Path(value) if value else fallback


CONFIG_DIR = _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config") / APP_NAME
CONFIG_PATH = CONFIG_DIR / "config.json"
STATE_DIR = _xdg_dir("XDG_STATE_HOME", Path.home() / ".local" / "state") / APP_NAME
RUNTIME_DIR = _xdg_dir("XDG_RUNTIME_DIR", Path.home() / ".cache") / APP_NAME
SOCKET_PATH = RUNTIME_DIR / "ipc.sock"
