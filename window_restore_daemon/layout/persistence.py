"""
Snapshot persistence

Stores every slot as one JSON array under a single key of the key-value
store. The format version is inferred from which key is present and from the
payload shape, so older generations are migrated or discarded on first load.
"""

import json
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from ..constants import (
    ACTIVE_SLOT_KEY,
    LEGACY_KEYS,
    LEGACY_PLAINTEXT_KEY,
    LEGACY_TIMESTAMP_KEY,
    LEGACY_UNSALTED_KEY,
    SLOTS_KEY,
)
from ..errors import EncodingFailure
from ..interfaces import KeyValueStore
from ..models import SnapshotSlot, WindowRecord

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Versioned snapshot store.

    Generations, newest first:
      - ``snapshot.slots`` holding slot objects (id, name, windows, timestamps, metadata)
      - ``snapshot.slots`` holding bare display maps (no metadata): migrated in place
      - ``manualSnapshotDataV2``: unsalted digests, cannot be re-keyed, discarded
      - ``manualSnapshotData``: plaintext names, discarded
    """

    def __init__(self, store: KeyValueStore, slot_count: int, persistence_disabled: bool = False):
        """
        Args:
            store: Key-value backend
            slot_count: Total slots including the automatic slot 0
            persistence_disabled: Start in privacy mode
        """
        self.store = store
        self.slot_count = slot_count
        self._persistence_disabled = persistence_disabled

    @property
    def persistence_disabled(self) -> bool:
        return self._persistence_disabled

    def set_persistence_disabled(self, disabled: bool) -> None:
        """Toggle privacy mode. Enabling it purges persisted slot data immediately."""
        was_disabled = self._persistence_disabled
        self._persistence_disabled = disabled
        if disabled:
            self.clear()
            if not was_disabled:
                logger.info("Persistence disabled: stored snapshots purged")
        elif was_disabled:
            logger.info("Persistence enabled")

    # ------------------------------------------------------------------
    # Save / load
    # ------------------------------------------------------------------

    def save_slots(self, slots: List[SnapshotSlot]) -> bool:
        """
        Persist all slots.

        Returns:
            True when written; False when persistence is disabled or the write failed

        Raises:
            EncodingFailure: Slots could not be serialized (stored bytes untouched)
        """
        if self._persistence_disabled:
            logger.debug("Persistence disabled, snapshot not saved")
            return False

        try:
            payload = json.dumps(
                [slot.model_dump(mode="json", by_alias=True) for slot in slots]
            ).encode("utf-8")
        except (TypeError, ValueError, PydanticSerializationError) as e:
            raise EncodingFailure("encode", str(e)) from e

        try:
            self.store.set(SLOTS_KEY, payload)
        except OSError as e:
            logger.error(f"Failed to write snapshots: {e}")
            return False

        logger.debug(f"Saved {sum(s.window_count for s in slots)} windows across {len(slots)} slots")
        return True

    def load_slots(self) -> Optional[List[SnapshotSlot]]:
        """
        Load persisted slots, migrating older generations.

        Returns:
            Exactly ``slot_count`` slots, or None if nothing usable is stored

        Raises:
            EncodingFailure: Current-key data exists but cannot be decoded
        """
        if self._persistence_disabled:
            return None

        self._discard_unrecoverable_generations()

        raw = self.store.get(SLOTS_KEY)
        if raw is None:
            return None

        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EncodingFailure("decode", str(e)) from e

        if not isinstance(data, list):
            raise EncodingFailure("decode", f"expected a list of slots, got {type(data).__name__}")

        try:
            if all(self._is_slot_object(entry) for entry in data):
                slots = [SnapshotSlot.model_validate(entry) for entry in data]
                migrated = False
            else:
                slots = self._migrate_bare_display_maps(data)
                migrated = True
        except ValidationError as e:
            raise EncodingFailure("decode", str(e)) from e

        slots = self._normalize(slots)
        if migrated:
            logger.info(f"Migrated {len(data)} slots from the pre-metadata format")
            self.save_slots(slots)

        return slots

    @staticmethod
    def _is_slot_object(entry: Any) -> bool:
        return isinstance(entry, dict) and "id" in entry and "windows" in entry

    @staticmethod
    def _migrate_bare_display_maps(data: List[Any]) -> List[SnapshotSlot]:
        slots = []
        for index, display_map in enumerate(data):
            if not isinstance(display_map, dict):
                raise EncodingFailure("decode", f"slot {index} is not an object")
            windows = {
                display_id: {
                    key: WindowRecord.model_validate(record)
                    for key, record in bucket.items()
                }
                for display_id, bucket in display_map.items()
            }
            slots.append(SnapshotSlot(id=index, windows=windows))
        return slots

    def _normalize(self, slots: List[SnapshotSlot]) -> List[SnapshotSlot]:
        """Return exactly ``slot_count`` slots placed by id; missing ones are empty."""
        by_id = {slot.id: slot for slot in slots}
        return [by_id.get(index) or SnapshotSlot(id=index) for index in range(self.slot_count)]

    def _discard_unrecoverable_generations(self) -> None:
        discarded = False
        for key, label in ((LEGACY_PLAINTEXT_KEY, "plaintext"), (LEGACY_UNSALTED_KEY, "unsalted")):
            if self.store.get(key) is not None:
                logger.warning(f"Discarding {label} snapshot data from an earlier version")
                self.store.remove(key)
                discarded = True
        if discarded:
            self.store.remove(LEGACY_TIMESTAMP_KEY)

    # ------------------------------------------------------------------
    # Slot helpers
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Remove all persisted slot data, including legacy generations."""
        self.store.remove(SLOTS_KEY)
        for key in LEGACY_KEYS:
            self.store.remove(key)

    def clear_slot(self, index: int) -> None:
        """Empty one persisted slot, leaving the others untouched."""
        slots = self.load_slots()
        if slots is None or index >= len(slots):
            return
        slots[index].clear()
        self.save_slots(slots)

    def get_slot_info(self, index: int) -> Tuple[int, Optional[datetime]]:
        """
        Returns:
            (window count, last update time) of the persisted slot
        """
        try:
            slots = self.load_slots()
        except EncodingFailure as e:
            logger.error(e.message)
            return 0, None
        if slots is None or index >= len(slots):
            return 0, None
        return slots[index].window_count, slots[index].updated_at

    def load_active_slot(self, default: int = 1) -> int:
        raw = self.store.get(ACTIVE_SLOT_KEY)
        if raw is None:
            return default
        try:
            value = int(raw.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            logger.warning(f"Ignoring invalid active slot value {raw!r}")
            return default
        return value if 1 <= value < self.slot_count else default

    def save_active_slot(self, index: int) -> None:
        try:
            self.store.set(ACTIVE_SLOT_KEY, str(index).encode("ascii"))
        except OSError as e:
            logger.error(f"Failed to store active slot: {e}")
