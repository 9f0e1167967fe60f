# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Per-cluster collection orchestrator.

One CephExporter owns the collectors of one cluster and the state they share
between scrapes (version, OSD topology, scrub and inactive PG trackers). A
scrape runs under a single lock: version detection, optional collector
discovery, topology refresh, then every collector in parallel.
"""

import concurrent.futures
import logging
import threading
from typing import Dict, List, Optional

from ceph_exporter.cache.inactive_pg import InactivePGTracker
from ceph_exporter.cache.scrub_cache import ScrubStateCache
from ceph_exporter.collectors.background import DEFAULT_INTERVAL, BackgroundCollector
from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.collectors.cluster_usage import ClusterUsageCollector
from ceph_exporter.collectors.crashes import CrashesCollector
from ceph_exporter.collectors.health import ClusterHealthCollector
from ceph_exporter.collectors.mds import MDSCollector
from ceph_exporter.collectors.monitors import MonitorCollector
from ceph_exporter.collectors.osd import OSDCollector
from ceph_exporter.collectors.pool_info import PoolInfoCollector
from ceph_exporter.collectors.pool_usage import PoolUsageCollector
from ceph_exporter.collectors.rbd_mirror import RbdMirrorCollector
from ceph_exporter.collectors.rgw import RGWCollector
from ceph_exporter.enrichment.osd_enrichment import OSDTopologyResolver
from ceph_exporter.errors import InvalidVersion, ParseError, TransportError
from ceph_exporter.metrics import MetricSample
from ceph_exporter.version import OLDEST, Version, parse_ceph_versions, parse_version_payload

LOG = logging.getLogger(__name__)

MODE_DISABLED = 0
MODE_FOREGROUND = 1
MODE_BACKGROUND = 2
COLLECTOR_MODES = (MODE_DISABLED, MODE_FOREGROUND, MODE_BACKGROUND)

RBD_MIRROR_DAEMON = "rbd-mirror"


class CephExporter:
    """Collects every metric family of one Ceph cluster."""

    def __init__(self, conn, cluster: str, config_file: str, user: str,
                 rgw_mode: int = MODE_DISABLED, mds_mode: int = MODE_DISABLED,
                 threads: int = 4, background_interval: float = DEFAULT_INTERVAL):
        """
        Args:
            conn: CephConnection for this cluster
            cluster: Value of the ``cluster`` label
            config_file: ceph.conf path handed to the CLI tools
            user: Ceph user handed to the CLI tools
            rgw_mode: 0 disabled, 1 collect on every scrape, 2 collect in the background
            mds_mode: Same choices as rgw_mode
            threads: Collectors run in parallel per scrape
            background_interval: Seconds between two background runs

        Raises:
            ValueError: If a mode is not one of 0, 1, 2
        """
        self.conn = conn
        self.cluster = cluster
        self.config_file = config_file
        self.user = user
        self.version: Version = OLDEST
        self.topology = OSDTopologyResolver()
        self.scrub_cache = ScrubStateCache()
        self.inactive_tracker = InactivePGTracker()
        self.background_interval = background_interval
        self.lock = threading.Lock()
        self.executor = concurrent.futures.ThreadPoolExecutor(max(1, threads),
                                                              thread_name_prefix=f"collect-{cluster}")

        self.collectors: Dict[str, Collector] = {}
        for collector in (
            ClusterUsageCollector(conn, cluster),
            PoolUsageCollector(conn, cluster),
            PoolInfoCollector(conn, cluster),
            ClusterHealthCollector(conn, cluster),
            MonitorCollector(conn, cluster),
            OSDCollector(conn, cluster, self.scrub_cache, self.inactive_tracker),
            CrashesCollector(conn, cluster),
        ):
            self.collectors[collector.name] = collector

        self._add_optional(RGWCollector(conn, cluster, config_file, user), rgw_mode)
        self._add_optional(MDSCollector(conn, cluster, config_file, user), mds_mode)

    def _add_optional(self, collector: Collector, mode: int) -> None:
        if mode not in COLLECTOR_MODES:
            raise ValueError(f"invalid {collector.name} collector mode {mode!r}, expected one of {COLLECTOR_MODES}")
        if mode == MODE_DISABLED:
            return
        if mode == MODE_BACKGROUND:
            collector = BackgroundCollector(collector, interval=self.background_interval)
        self.collectors[collector.name] = collector
        LOG.info(f"[{self.cluster}] {collector.name} collector enabled (mode {mode})")

    def _admin(self, prefix: str) -> bytes:
        buf, _ = self.conn.run_admin_command({"prefix": prefix, "format": "json"})
        return buf

    def detect_version(self) -> Version:
        """
        Ask the cluster for its version.

        Any failure falls back to OLDEST so that version-gated collectors pick
        their most conservative payload layout.
        """
        try:
            version = parse_version_payload(self._admin("version"))
        except (TransportError, ParseError, InvalidVersion) as e:
            LOG.warning(f"[{self.cluster}] could not determine the cluster version, assuming oldest: {e}")
            version = OLDEST
        if version != self.version:
            LOG.info(f"[{self.cluster}] cluster version {version}")
        self.version = version
        return version

    def detect_rbd_mirror(self) -> None:
        """Add or remove the rbd-mirror collector from the daemons ``versions`` reports."""
        try:
            versions = parse_ceph_versions(self._admin("versions"))
        except (TransportError, ParseError) as e:
            LOG.warning(f"[{self.cluster}] daemon discovery failed, keeping current collectors: {e}")
            return

        running = bool(versions.get(RBD_MIRROR_DAEMON))
        present = RbdMirrorCollector.name in self.collectors
        if running and not present:
            self.collectors[RbdMirrorCollector.name] = RbdMirrorCollector(
                self.conn, self.cluster, self.config_file, self.user)
            LOG.info(f"[{self.cluster}] rbd-mirror daemons found, enabling rbd-mirror collector")
        elif not running and present:
            del self.collectors[RbdMirrorCollector.name]
            LOG.info(f"[{self.cluster}] no rbd-mirror daemons, disabling rbd-mirror collector")

    def refresh_topology(self) -> None:
        try:
            self.topology.refresh(self._admin("osd tree"))
        except (TransportError, ParseError) as e:
            if self.topology.loaded:
                LOG.warning(f"[{self.cluster}] osd tree refresh failed, using previous topology: {e}")
            else:
                LOG.error(f"[{self.cluster}] osd tree unavailable, OSD metrics carry no topology labels: {e}")

    def collect_all(self) -> List[MetricSample]:
        """
        Run one scrape.

        Returns:
            Samples of every collector that succeeded; a failing collector
            contributes nothing and does not affect the others
        """
        with self.lock:
            ctx = ScrapeContext(version=self.detect_version(), topology=self.topology)
            self.detect_rbd_mirror()
            self.refresh_topology()

            futures = {
                name: self.executor.submit(collector.collect, ctx)
                for name, collector in self.collectors.items()
            }
            samples: List[MetricSample] = []
            for name, future in futures.items():
                try:
                    samples.extend(future.result())
                except Exception as e:
                    LOG.exception(f"[{self.cluster}] {name} collector crashed: {e}")
            LOG.debug(f"[{self.cluster}] scrape produced {len(samples)} samples")
            return samples

    def close(self, timeout: Optional[float] = 5.0) -> None:
        for collector in self.collectors.values():
            if isinstance(collector, BackgroundCollector):
                collector.stop(timeout)
        self.executor.shutdown(wait=True)
