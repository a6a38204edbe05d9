"""Unit tests for SnapshotStore."""

import json
from unittest.mock import Mock

import pytest

from window_restore_daemon.constants import (
    ACTIVE_SLOT_KEY,
    LEGACY_PLAINTEXT_KEY,
    LEGACY_TIMESTAMP_KEY,
    LEGACY_UNSALTED_KEY,
    SLOTS_KEY,
)
from window_restore_daemon.errors import EncodingFailure
from window_restore_daemon.layout.capture import SnapshotCapture
from window_restore_daemon.layout.persistence import SnapshotStore
from window_restore_daemon.models import SnapshotSlot

from conftest import EXTERNAL, MAIN, window


@pytest.fixture
def store(kv_store):
    return SnapshotStore(kv_store, slot_count=6)


@pytest.fixture
def slots(hasher, verbose, masker):
    capture = SnapshotCapture(hasher, verbose, masker)
    result = [SnapshotSlot(id=i) for i in range(6)]
    capture.capture_manual_slot(
        result[1],
        [MAIN, EXTERNAL],
        [window("App1", 11, 100, 100, title="Inbox"), window("App2", 12, 2600, 40)],
    )
    result[1].name = "Desk"
    return result


def test_round_trip_preserves_window_content(store, slots):
    assert store.save_slots(slots) is True

    loaded = store.load_slots()

    assert [s.windows for s in loaded] == [s.windows for s in slots]
    assert loaded[1].name == "Desk"
    assert loaded[1].updated_at == slots[1].updated_at


def test_stored_json_uses_camel_case(store, slots, kv_store):
    store.save_slots(slots)
    data = json.loads(kv_store.data[SLOTS_KEY])

    record = next(iter(data[1]["windows"][EXTERNAL.id].values()))
    assert "appNameHash" in record["identity"]
    assert "sourceWindowNumber" in record
    assert "updatedAt" in data[1]


def test_nothing_stored_loads_none(store):
    assert store.load_slots() is None


def test_load_normalizes_slot_count(kv_store, store, slots):
    store.save_slots(slots[:2])

    loaded = store.load_slots()

    assert len(loaded) == 6
    assert [s.id for s in loaded] == list(range(6))
    assert loaded[4].is_empty


def test_bare_display_maps_are_migrated(kv_store, store, slots):
    old = [
        {display_id: {k: r.model_dump(mode="json", by_alias=True) for k, r in bucket.items()}
         for display_id, bucket in slot.windows.items()}
        for slot in slots
    ]
    kv_store.data[SLOTS_KEY] = json.dumps(old).encode()

    loaded = store.load_slots()

    assert loaded[1].windows == slots[1].windows
    assert loaded[1].name is None
    rewritten = json.loads(kv_store.data[SLOTS_KEY])
    assert rewritten[1]["id"] == 1


def test_unrecoverable_generations_are_discarded(kv_store, store):
    kv_store.data[LEGACY_PLAINTEXT_KEY] = b'[{"Terminal": {}}]'
    kv_store.data[LEGACY_UNSALTED_KEY] = b"[]"
    kv_store.data[LEGACY_TIMESTAMP_KEY] = b"1700000000"

    assert store.load_slots() is None
    assert LEGACY_PLAINTEXT_KEY not in kv_store.data
    assert LEGACY_UNSALTED_KEY not in kv_store.data
    assert LEGACY_TIMESTAMP_KEY not in kv_store.data


def test_timestamp_kept_without_legacy_data(kv_store, store):
    kv_store.data[LEGACY_TIMESTAMP_KEY] = b"1700000000"

    store.load_slots()

    assert LEGACY_TIMESTAMP_KEY in kv_store.data


def test_corrupt_data_raises_and_is_left_in_place(kv_store, store):
    kv_store.data[SLOTS_KEY] = b"{not json"

    with pytest.raises(EncodingFailure):
        store.load_slots()
    assert kv_store.data[SLOTS_KEY] == b"{not json"


def test_non_list_payload_raises(kv_store, store):
    kv_store.data[SLOTS_KEY] = b'{"id": 0}'

    with pytest.raises(EncodingFailure):
        store.load_slots()


def test_encoding_failure_leaves_stored_bytes(kv_store, store, slots):
    store.save_slots(slots)
    before = kv_store.data[SLOTS_KEY]
    broken = slots[1].model_copy()
    broken.metadata = {"bad": object()}

    with pytest.raises(EncodingFailure):
        store.save_slots([broken])
    assert kv_store.data[SLOTS_KEY] == before


def test_write_error_returns_false():
    backend = Mock()
    backend.set.side_effect = OSError("disk full")
    store = SnapshotStore(backend, slot_count=2)

    assert store.save_slots([SnapshotSlot(id=0), SnapshotSlot(id=1)]) is False


def test_privacy_mode_purges_immediately(kv_store, store, slots):
    store.save_slots(slots)
    kv_store.data[LEGACY_UNSALTED_KEY] = b"[]"

    store.set_persistence_disabled(True)

    assert SLOTS_KEY not in kv_store.data
    assert LEGACY_UNSALTED_KEY not in kv_store.data
    assert store.save_slots(slots) is False
    assert store.load_slots() is None


def test_clear_slot_leaves_others(store, slots):
    store.save_slots(slots)
    slots[2].replace_windows(dict(slots[1].windows))
    store.save_slots(slots)

    store.clear_slot(1)

    assert store.get_slot_info(1) == (0, None)
    assert store.get_slot_info(2)[0] == 2


def test_get_slot_info_tolerates_corrupt_data(kv_store, store):
    kv_store.data[SLOTS_KEY] = b"garbage"

    assert store.get_slot_info(0) == (0, None)


@pytest.mark.parametrize("raw,expected", [
    (None, 1),
    (b"3", 3),
    (b"0", 1),
    (b"9", 1),
    (b"abc", 1),
])
def test_active_slot(kv_store, store, raw, expected):
    if raw is not None:
        kv_store.data[ACTIVE_SLOT_KEY] = raw

    assert store.load_active_slot() == expected


def test_save_active_slot(kv_store, store):
    store.save_active_slot(4)

    assert store.load_active_slot() == 4
