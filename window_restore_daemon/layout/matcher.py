"""
Window matching

Pairs saved records with live windows. Each live window is claimed by at most
one record. Rules, strongest first:

  1. exact window number and same app digest
  2. same app digest and same title digest (both present)
  3. same app digest and size within tolerance
  4. same app digest only

Rule 1 runs over the whole bucket before any looser rule, so a record that
could match loosely never steals a window another record owns exactly. The
remaining records are then processed in window-key order; within a rule the
candidate nearest to the saved origin wins.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from ..diagnostics import AppNameMasker, VerboseLog
from ..identity import IdentityHasher
from ..models import (
    LiveWindow,
    MatchResult,
    MatchRule,
    WindowIdentity,
    WindowLayer,
    WindowRecord,
)

logger = logging.getLogger(__name__)


class WindowMatcher:
    """Injective record-to-window matcher."""

    def __init__(self, hasher: IdentityHasher, verbose: VerboseLog, masker: AppNameMasker,
                 size_tolerance: float = 20.0):
        self.hasher = hasher
        self.verbose = verbose
        self.masker = masker
        self.size_tolerance = size_tolerance

    def match(self, bucket: Dict[str, WindowRecord], live_windows: List[LiveWindow],
              claimed: Optional[Set[int]] = None) -> List[MatchResult]:
        """
        Match one display bucket against the live window list.

        Args:
            bucket: Window key to saved record
            live_windows: Enumerator output
            claimed: Indices into ``live_windows`` already taken by an earlier
                bucket; updated in place

        Returns:
            One MatchResult per matched record
        """
        claimed = claimed if claimed is not None else set()
        candidates = [
            (index, window, self.hasher.identity_for(window))
            for index, window in enumerate(live_windows)
            if window.layer == WindowLayer.NORMAL
        ]

        results: List[MatchResult] = []
        pending: List[Tuple[str, WindowRecord]] = []

        for key in sorted(bucket):
            record = bucket[key]
            exact = self._find_exact(record, candidates, claimed)
            if exact is None:
                pending.append((key, record))
                continue
            index, window = exact
            claimed.add(index)
            results.append(MatchResult(
                window_key=key,
                record=record,
                live=window,
                rule=MatchRule.EXACT,
                distance=window.frame.origin_distance(record.frame),
            ))
            self.verbose(f"{key[:12]}: exact match {self.masker.mask(window.owner_name)} #{window.window_number}")

        for key, record in pending:
            found = self._find_loose(key, record, candidates, claimed)
            if found is None:
                self.verbose(f"{key[:12]}: no candidate")
                continue
            index, window, rule, distance = found
            claimed.add(index)
            results.append(MatchResult(window_key=key, record=record, live=window, rule=rule, distance=distance))

        return results

    @staticmethod
    def _find_exact(record: WindowRecord, candidates, claimed: Set[int]) -> Optional[Tuple[int, LiveWindow]]:
        if record.source_window_number is None:
            return None
        for index, window, identity in candidates:
            if index in claimed:
                continue
            if (window.window_number == record.source_window_number
                    and identity.app_name_hash == record.identity.app_name_hash):
                return index, window
        return None

    def _find_loose(self, key: str, record: WindowRecord, candidates,
                    claimed: Set[int]) -> Optional[Tuple[int, LiveWindow, MatchRule, float]]:
        tiers: Dict[MatchRule, List[Tuple[float, int, int, LiveWindow]]] = {
            MatchRule.TITLE: [],
            MatchRule.SIZE: [],
            MatchRule.APP: [],
        }

        for index, window, identity in candidates:
            if index in claimed or identity.app_name_hash != record.identity.app_name_hash:
                continue
            rule = self._classify(record, window, identity)
            distance = window.frame.origin_distance(record.frame)
            number = window.window_number if window.window_number is not None else -1
            tiers[rule].append((distance, number, index, window))

        self.verbose(
            f"{key[:12]}: candidates title={len(tiers[MatchRule.TITLE])} "
            f"size={len(tiers[MatchRule.SIZE])} app={len(tiers[MatchRule.APP])}"
        )

        for rule in (MatchRule.TITLE, MatchRule.SIZE, MatchRule.APP):
            if not tiers[rule]:
                continue
            distance, _, index, window = min(tiers[rule], key=lambda c: (c[0], c[1], c[2]))
            self.verbose(
                f"{key[:12]}: {rule.value} match {self.masker.mask(window.owner_name)} "
                f"at distance {distance:.1f}"
            )
            return index, window, rule, distance
        return None

    def _classify(self, record: WindowRecord, window: LiveWindow, identity: WindowIdentity) -> MatchRule:
        if (record.identity.title_hash is not None
                and identity.title_hash is not None
                and record.identity.title_hash == identity.title_hash):
            return MatchRule.TITLE
        if window.frame.size_within(record.size, self.size_tolerance):
            return MatchRule.SIZE
        return MatchRule.APP
