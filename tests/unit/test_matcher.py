"""Unit tests for WindowMatcher."""

import itertools

import pytest

from window_restore_daemon.layout.capture import SnapshotCapture
from window_restore_daemon.layout.matcher import WindowMatcher
from window_restore_daemon.models import MatchRule, Size, WindowLayer, WindowRecord

from conftest import MAIN, EXTERNAL, frame, window


@pytest.fixture
def matcher(hasher, verbose, masker):
    return WindowMatcher(hasher, verbose, masker, size_tolerance=20.0)


def record_for(hasher, live, x=None, y=None, number="same"):
    identity = hasher.identity_for(live)
    saved_frame = frame(live.frame.x if x is None else x, live.frame.y if y is None else y,
                        live.frame.width, live.frame.height)
    return WindowRecord(
        identity=identity,
        size=Size(width=live.frame.width, height=live.frame.height),
        frame=saved_frame,
        source_window_number=live.window_number if number == "same" else number,
    )


def test_exact_match_by_window_number(matcher, hasher):
    saved = window("Terminal", 5, 100, 100)
    bucket = {"k": record_for(hasher, saved)}
    live = [window("Terminal", 4, 110, 100), window("Terminal", 5, 2700, 300)]

    results = matcher.match(bucket, live)

    assert len(results) == 1
    assert results[0].rule == MatchRule.EXACT
    assert results[0].live.window_number == 5


def test_exact_requires_same_app(matcher, hasher):
    saved = window("Terminal", 5, 100, 100)
    bucket = {"k": record_for(hasher, saved)}
    live = [window("Browser", 5, 100, 100)]

    assert matcher.match(bucket, live) == []


def test_title_beats_size_and_app(matcher, hasher):
    saved = window("Editor", 1, 100, 100, title="main.py")
    bucket = {"k": record_for(hasher, saved, number=99)}
    live = [
        window("Editor", 2, 100, 100),                                  # same size, nearest
        window("Editor", 3, 2800, 500, width=300, height=200, title="main.py"),
    ]

    results = matcher.match(bucket, live)

    assert results[0].rule == MatchRule.TITLE
    assert results[0].live.window_number == 3


def test_size_beats_app_only(matcher, hasher):
    saved = window("Editor", 1, 100, 100)
    bucket = {"k": record_for(hasher, saved, number=99)}
    live = [
        window("Editor", 2, 100, 100, width=400, height=300),
        window("Editor", 3, 3000, 600, width=810, height=590),
    ]

    results = matcher.match(bucket, live)

    assert results[0].rule == MatchRule.SIZE
    assert results[0].live.window_number == 3


def test_app_only_picks_nearest(matcher, hasher):
    saved = window("Editor", 1, 100, 100)
    bucket = {"k": record_for(hasher, saved, number=99)}
    live = [
        window("Editor", 2, 3000, 900, width=300, height=200),
        window("Editor", 3, 2600, 50, width=300, height=200),
    ]

    results = matcher.match(bucket, live)

    assert results[0].rule == MatchRule.APP
    assert results[0].live.window_number == 3


def test_equal_distance_breaks_on_window_number(matcher, hasher):
    saved = window("Editor", 1, 100, 100)
    bucket = {"k": record_for(hasher, saved, number=None)}
    live = [window("Editor", 8, 200, 100), window("Editor", 7, 0, 100)]

    results = matcher.match(bucket, live)

    assert results[0].live.window_number == 7


def test_non_normal_windows_are_not_candidates(matcher, hasher):
    saved = window("Video", 1, 100, 100)
    bucket = {"k": record_for(hasher, saved)}
    live = [window("Video", 1, 100, 100, layer=WindowLayer.FULLSCREEN)]

    assert matcher.match(bucket, live) == []


def test_exact_match_not_stolen_in_any_order(matcher, hasher):
    """A loose record processed first must not take a window owned exactly by another."""
    a = window("Term", 1, 100, 100)
    b = window("Term", 2, 900, 100)
    exact_record = record_for(hasher, b)
    loose_record = record_for(hasher, a, x=900, y=100, number=None)

    live = [window("Term", 2, 2600, 100)]
    for keys in (("a_key", "b_key"), ("b_key", "a_key")):
        bucket = {keys[0]: loose_record, keys[1]: exact_record}
        results = matcher.match(bucket, live)
        assert len(results) == 1
        assert results[0].record is exact_record
        assert results[0].rule == MatchRule.EXACT


@pytest.mark.parametrize("saved_count,live_count", [(3, 1), (2, 2), (1, 4), (4, 3)])
def test_matching_is_injective(matcher, hasher, saved_count, live_count):
    saved = [window("Term", n, 100 * n, 100) for n in range(saved_count)]
    bucket = {f"key{n}": record_for(hasher, w, number=None) for n, w in enumerate(saved)}
    live = [window("Term", 50 + n, 2600 + 10 * n, 100) for n in range(live_count)]

    results = matcher.match(bucket, live)

    matched = [r.live.window_number for r in results]
    assert len(matched) == len(set(matched))
    assert len(results) == min(saved_count, live_count)


def test_claimed_set_is_shared_across_buckets(matcher, hasher):
    w = window("Term", 1, 100, 100)
    first = {"a": record_for(hasher, w)}
    second = {"b": record_for(hasher, w, number=None)}
    live = [window("Term", 1, 2700, 100)]
    claimed = set()

    assert len(matcher.match(first, live, claimed)) == 1
    assert matcher.match(second, live, claimed) == []
    assert claimed == {0}


def test_captured_slot_matches_itself_exactly(matcher, hasher, verbose, masker):
    capture = SnapshotCapture(hasher, verbose, masker)
    live = [window("App1", 11, 100, 100), window("App2", 12, 2600, 40)]
    buckets = capture.capture_current_windows([MAIN, EXTERNAL], live)

    for bucket in buckets.values():
        for result in matcher.match(bucket, live):
            assert result.rule == MatchRule.EXACT
            assert result.distance == 0


def test_all_orderings_give_same_pairs(matcher, hasher):
    saved = [window("Term", n, 100 * n, 100) for n in range(3)]
    records = [(f"key{n}", record_for(hasher, w, number=None)) for n, w in enumerate(saved)]
    live = [window("Term", 20 + n, 95 * n, 100) for n in range(3)]

    outcomes = set()
    for order in itertools.permutations(records):
        bucket = dict(order)
        results = matcher.match(bucket, live)
        outcomes.add(tuple(sorted((r.window_key, r.live.window_number) for r in results)))

    assert len(outcomes) == 1
