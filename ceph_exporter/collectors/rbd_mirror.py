# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
rbd-mirror pool health from ``rbd mirror pool status``.

Only added to a cluster exporter while ``ceph versions`` reports running
rbd-mirror daemons.
"""

import logging
from typing import Iterable

from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import load_json_object
from ceph_exporter.version import PACIFIC

LOG = logging.getLogger(__name__)

RBD_CLI_PATH = "/usr/bin/rbd"

MIRROR_STATUS_VALUES = {
    "OK": 0,
    "WARNING": 1,
    "ERROR": 2,
}
UNKNOWN_STATUS = -1

POOL_STATUS = MetricDef("rbd_mirror_pool_status",
                        "Health status of rbd-mirror, can vary only between 3 states (err:2, warn:1, ok:0)")
POOL_DAEMON_STATUS = MetricDef(
    "rbd_mirror_pool_daemon_status",
    "Health status of rbd-mirror daemons, can vary only between 3 states (err:2, warn:1, ok:0)")
POOL_IMAGE_STATUS = MetricDef(
    "rbd_mirror_pool_image_status",
    "Health status of rbd-mirror images, can vary only between 3 states (err:2, warn:1, ok:0)")


class RbdMirrorCollector(Collector):
    name = "rbd_mirror"

    def __init__(self, conn, cluster: str, config_file: str, user: str, binary: str = RBD_CLI_PATH):
        super().__init__(conn, cluster)
        self.config_file = config_file
        self.user = user
        self.binary = binary

    def status_value(self, status: str) -> int:
        value = MIRROR_STATUS_VALUES.get(status)
        if value is None:
            LOG.error(f"[{self.cluster}] Unknown rbd-mirror status: {status!r}")
            return UNKNOWN_STATUS
        return value

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        argv = [self.binary, "-c", self.config_file, "--user", self.user,
                "mirror", "pool", "status", "--format", "json"]
        data = load_json_object(self.conn.run_background_command(argv), "rbd mirror pool status")
        summary = data.get("summary") or {}

        samples = [POOL_STATUS.sample(self.status_value(summary.get("health", "")))]
        # daemon and image health are only reported from Pacific on
        if ctx.version.is_at_least(PACIFIC):
            samples.append(POOL_DAEMON_STATUS.sample(self.status_value(summary.get("daemon_health", ""))))
            samples.append(POOL_IMAGE_STATUS.sample(self.status_value(summary.get("image_health", ""))))
        return samples
