# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Last known scrub state per OSD.

The cache is used in three phases on every scrape: reset every known OSD to
idle, mark the OSDs that are in the acting set of a scrubbing PG, then take a
snapshot for emission. An OSD that stopped scrubbing therefore reports idle on
the very next scrape instead of disappearing or staying at its old value.

Marking is not a plain overwrite: within one scrape an OSD keeps the highest
state it was marked with, so the PG order in the dump does not matter.
"""

import threading
from enum import IntEnum
from typing import Dict


class ScrubState(IntEnum):
    IDLE = 0
    SCRUBBING = 1
    DEEP_SCRUBBING = 2


class ScrubStateCache:
    """Scrub state per OSD id. Entries live for the whole process."""

    def __init__(self):
        self._states: Dict[int, ScrubState] = {}
        self._lock = threading.Lock()

    def reset_all_to_idle(self) -> None:
        with self._lock:
            for osd_id in self._states:
                self._states[osd_id] = ScrubState.IDLE

    def mark(self, osd_id: int, state: ScrubState) -> None:
        """
        Record the scrub state of an OSD for the current scrape.

        A deep scrub is never downgraded by a later light scrub seen in the
        same scrape.
        """
        with self._lock:
            current = self._states.get(osd_id, ScrubState.IDLE)
            self._states[osd_id] = max(current, ScrubState(state))

    def snapshot(self) -> Dict[int, ScrubState]:
        with self._lock:
            return dict(self._states)

    def __len__(self) -> int:
        return len(self._states)
