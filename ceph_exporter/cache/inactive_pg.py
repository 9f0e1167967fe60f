# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Tracks how long placement groups have been inactive.

Only the first time a PG is seen without the active state is recorded, so
the reported value is the age of the longest-inactive PG. This separates one
PG stuck peering from many PGs briefly peering during a rebalance.
"""

import logging
import time
from typing import Callable, Dict, Iterable, Tuple

LOG = logging.getLogger(__name__)


class InactivePGTracker:
    """First-observed-inactive timestamp per PG id."""

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Time source returning seconds since the epoch
        """
        self._clock = clock
        self._first_seen: Dict[str, float] = {}

    def observe(self, pg_states: Iterable[Tuple[str, str]]) -> float:
        """
        Update the tracker with the current PG states.

        Args:
            pg_states: (pgid, state string) pairs from the current PG dump

        Returns:
            Seconds the oldest currently inactive PG has been inactive, or 0
        """
        now = self._clock()
        seen = set()
        for pgid, state in pg_states:
            seen.add(pgid)
            if "active" in state:
                self._first_seen.pop(pgid, None)
                continue
            self._first_seen.setdefault(pgid, now)

        # PGs that left the dump (pool deleted, merged) no longer count
        for pgid in list(self._first_seen):
            if pgid not in seen:
                del self._first_seen[pgid]

        if not self._first_seen:
            return 0.0
        oldest = min(self._first_seen.values())
        LOG.debug(f"Tracking {len(self._first_seen)} inactive PGs, oldest since {oldest}")
        return now - oldest

    def tracked(self) -> Dict[str, float]:
        return dict(self._first_seen)
