# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Per-pool usage and I/O counters from ``ceph df detail``.
"""

import logging
from typing import Iterable, List

from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import number, object_list

LOG = logging.getLogger(__name__)

POOL = ("pool",)

USED = MetricDef("pool_used_bytes", "Capacity of the pool that is currently under use", POOL)
RAW_USED = MetricDef("pool_raw_used_bytes",
                     "Raw capacity of the pool that is currently under use, this factors in the size", POOL)
AVAILABLE = MetricDef("pool_available_bytes", "Free space for the pool", POOL)
PERCENT_USED = MetricDef("pool_percent_used",
                         "Percentage of the capacity available to this pool that is used by this pool", POOL)
OBJECTS = MetricDef("pool_objects_total", "Total no. of objects allocated within the pool", POOL)
DIRTY = MetricDef("pool_dirty_objects_total", "Total no. of dirty objects in a cache-tier pool", POOL)
READ = MetricDef("pool_read_total", "Total read I/O calls for the pool", POOL)
READ_BYTES = MetricDef("pool_read_bytes_total", "Total read throughput for the pool", POOL)
WRITE = MetricDef("pool_write_total", "Total write I/O calls for the pool", POOL)
WRITE_BYTES = MetricDef("pool_write_bytes_total", "Total write throughput for the pool", POOL)


class PoolUsageCollector(Collector):
    name = "pool_usage"

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        data = self.admin_json("df", detail="detail")
        samples: List[MetricSample] = []
        for pool in object_list(data, "pools"):
            name = pool.get("name", "")
            stats = pool.get("stats") or {}
            raw_used = max(number(stats, "stored_raw"), number(stats, "bytes_used"))
            samples.extend([
                USED.sample(number(stats, "stored"), name),
                RAW_USED.sample(raw_used, name),
                AVAILABLE.sample(number(stats, "max_avail"), name),
                PERCENT_USED.sample(number(stats, "percent_used"), name),
                OBJECTS.sample(number(stats, "objects"), name),
                DIRTY.sample(number(stats, "dirty"), name),
                READ.sample(number(stats, "rd"), name),
                READ_BYTES.sample(number(stats, "rd_bytes"), name),
                WRITE.sample(number(stats, "wr"), name),
                WRITE_BYTES.sample(number(stats, "wr_bytes"), name),
            ])
        LOG.debug(f"[{self.cluster}] collected usage for {len(samples) // 10} pools")
        return samples
