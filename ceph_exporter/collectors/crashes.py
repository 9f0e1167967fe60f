# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Crash report inventory from ``ceph crash ls``.

This counts every report the cluster still keeps, per daemon and per status
(new or archived). It differs from ``new_crash_reports``, which only counts
recent new reports as seen by the health checks.
"""

from collections import Counter
from typing import Dict, Iterable, Tuple

from ceph_exporter import extractors
from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.metrics import MetricDef, MetricSample

CRASH_REPORTS = MetricDef("crash_reports", "Count of crashes reports per daemon, according to `ceph crash ls`",
                          ("daemon", "status"))

STATUS_NAMES = {True: "new", False: "archived"}


def parse_crash_ls(text: str) -> Counter:
    """Count the plain ``crash ls`` lines per (entity, is_new)."""
    crashes: Counter = Counter()
    for line in text.splitlines():
        entry = extractors.crash_line(line)
        if entry is not None:
            crashes[entry] += 1
    return crashes


def crash_counts(crashes: Counter) -> Dict[Tuple[str, bool], int]:
    """Counts for both statuses of every daemon present in ``crashes``."""
    counts = {}
    for entity in sorted({entity for entity, _ in crashes}):
        for is_new in (True, False):
            counts[(entity, is_new)] = crashes.get((entity, is_new), 0)
    return counts


class CrashesCollector(Collector):
    """
    Emits both statuses for every daemon listed by the current ``crash ls``.
    A daemon whose reports were all pruned disappears on the next scrape.
    """

    name = "crashes"

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        # the JSON form is very verbose during a crash storm
        text = self.admin_command("crash ls", fmt="plain").decode(errors="replace")
        counts = crash_counts(parse_crash_ls(text))
        return [CRASH_REPORTS.sample(count, entity, STATUS_NAMES[is_new])
                for (entity, is_new), count in sorted(counts.items())]
