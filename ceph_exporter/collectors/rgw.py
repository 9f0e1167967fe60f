# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
RADOS Gateway garbage collection and bucket resharding queues.

Both lists come from ``radosgw-admin``, which can take minutes on a large
gateway; the orchestrator usually runs this collector in background mode.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import load_json_list

LOG = logging.getLogger(__name__)

RADOSGW_ADMIN_PATH = "/usr/bin/radosgw-admin"
RGW_GC_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

GC_ACTIVE_TASKS = MetricDef("rgw_gc_active_tasks", "RGW GC active task count")
GC_ACTIVE_OBJECTS = MetricDef("rgw_gc_active_objects", "RGW GC active object count")
GC_PENDING_TASKS = MetricDef("rgw_gc_pending_tasks", "RGW GC pending task count")
GC_PENDING_OBJECTS = MetricDef("rgw_gc_pending_objects", "RGW GC pending object count")
ACTIVE_RESHARDS = MetricDef("rgw_active_reshards", "RGW active bucket reshard operations")
BUCKET_RESHARD = MetricDef("rgw_bucket_reshard", "RGW bucket reshard operation", ("bucket",))


def gc_expires_at(raw: str) -> Optional[float]:
    """
    Expiry of a GC task as epoch seconds.

    ``2024-05-01 12:00:00.123456`` -> seconds; the fraction is ignored.
    Returns None when the time cannot be parsed.
    """
    try:
        parsed = datetime.strptime(raw.split(".", 1)[0], RGW_GC_TIME_FORMAT)
    except (AttributeError, ValueError):
        return None
    return parsed.replace(tzinfo=timezone.utc).timestamp()


class RGWCollector(Collector):
    name = "rgw"

    def __init__(self, conn, cluster: str, config_file: str, user: str,
                 clock: Callable[[], float] = time.time, binary: str = RADOSGW_ADMIN_PATH):
        """
        Args:
            conn: CephConnection
            cluster: Cluster label
            config_file: Path of ceph.conf passed to radosgw-admin
            user: Ceph user (without the ``client.`` prefix)
            clock: Time source used to split active from pending GC tasks
            binary: radosgw-admin executable
        """
        super().__init__(conn, cluster)
        self.config_file = config_file
        self.user = user
        self.clock = clock
        self.binary = binary

    def _argv(self, *args: str) -> List[str]:
        return [self.binary, "-c", self.config_file, "--user", self.user, *args]

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        return self.collect_parts([self._gc, self._reshard])

    def _gc(self) -> List[MetricSample]:
        tasks = load_json_list(self.conn.run_background_command(self._argv("gc", "list", "--include-all")),
                               "gc list")
        now = self.clock()
        active_tasks = active_objects = pending_tasks = pending_objects = 0
        for task in tasks:
            objects = task.get("objs") or []
            expires = gc_expires_at(task.get("time", ""))
            # an unreadable time counts as expiring right now, which is not yet past
            if expires is not None and now > expires:
                active_tasks += 1
                active_objects += len(objects)
            else:
                pending_tasks += 1
                pending_objects += len(objects)

        LOG.debug(f"[{self.cluster}] rgw gc: {active_tasks} active, {pending_tasks} pending tasks")
        return [
            GC_ACTIVE_TASKS.sample(active_tasks),
            GC_ACTIVE_OBJECTS.sample(active_objects),
            GC_PENDING_TASKS.sample(pending_tasks),
            GC_PENDING_OBJECTS.sample(pending_objects),
        ]

    def _reshard(self) -> List[MetricSample]:
        ops = load_json_list(self.conn.run_background_command(self._argv("reshard", "list")), "reshard list")
        samples = [BUCKET_RESHARD.sample(1, op.get("bucket_name", "")) for op in ops]
        samples.append(ACTIVE_RESHARDS.sample(len(ops)))
        return samples
