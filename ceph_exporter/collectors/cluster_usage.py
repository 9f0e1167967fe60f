# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Raw capacity of the whole cluster from ``ceph df``.
"""

from typing import Iterable

from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import number

CAPACITY = MetricDef("cluster_capacity_bytes", "Total capacity of the cluster")
USED = MetricDef("cluster_used_bytes", "Capacity of the cluster currently in use")
AVAILABLE = MetricDef("cluster_available_bytes", "Available space within the cluster")


class ClusterUsageCollector(Collector):
    name = "cluster_usage"

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        stats = self.admin_json("df").get("stats") or {}
        return [
            CAPACITY.sample(number(stats, "total_bytes")),
            USED.sample(number(stats, "total_used_bytes")),
            AVAILABLE.sample(number(stats, "total_avail_bytes")),
        ]
