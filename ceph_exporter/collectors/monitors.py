# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Monitor capacity, clock skew, quorum size and the daemon version/feature
inventory.
"""

from typing import Any, Dict, Iterable, List

from ceph_exporter import extractors
from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.errors import ParseError
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import number, object_list
from ceph_exporter.version import parse_ceph_versions

MONITOR = ("monitor",)

CAPACITY = MetricDef("monitor_capacity_bytes", "Total storage capacity of the monitor node", MONITOR)
USED = MetricDef("monitor_used_bytes", "Storage of the monitor node that is currently allocated for use", MONITOR)
AVAIL = MetricDef("monitor_avail_bytes", "Total unused storage capacity that the monitor node has left", MONITOR)
AVAIL_PERCENT = MetricDef("monitor_avail_percent",
                          "Percentage of total unused storage capacity that the monitor node has left", MONITOR)
STORE_CAPACITY = MetricDef("monitor_store_capacity_bytes",
                           "Total capacity of the FileStore backing the monitor daemon", MONITOR)
STORE_SST = MetricDef("monitor_store_sst_bytes", "Capacity of the FileStore used only for raw SSTs", MONITOR)
STORE_LOG = MetricDef("monitor_store_log_bytes", "Capacity of the FileStore used only for logging", MONITOR)
STORE_MISC = MetricDef("monitor_store_misc_bytes",
                       "Capacity of the FileStore used only for storing miscellaneous information", MONITOR)
CLOCK_SKEW = MetricDef("monitor_clock_skew_seconds", "Clock skew the monitor node is incurring", MONITOR)
LATENCY = MetricDef("monitor_latency_seconds", "Latency the monitor node is incurring", MONITOR)
QUORUM_COUNT = MetricDef("monitor_quorum_count", "The total size of the monitor quorum")
VERSIONS = MetricDef("versions", "Counts of current versioned daemons, parsed from `ceph versions`",
                     ("daemon", "version_tag", "sha1", "release_name"))
FEATURES = MetricDef("features", "Counts of current client features, parsed from `ceph features`",
                     ("daemon", "release", "features"))

UNKNOWN = "unknown"


class MonitorCollector(Collector):
    """
    Reads ``status``, ``time-sync-status``, ``versions`` and ``features``.

    Each request is independent: a failing one is logged and only its
    families are missing from the scrape.
    """

    name = "monitors"

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        samples = self.collect_parts([self._status, self._time_sync, self._versions, self._features])
        # time-sync-status refines the skew and latency reported by status
        latest = {(s.metric, s.label_values): s for s in samples}
        return list(latest.values())

    def _status(self) -> List[MetricSample]:
        status = self.admin_json("status")
        health = status.get("health") or {}
        samples = []

        for service in object_list(health.get("health") or {}, "health_services"):
            for mon in object_list(service, "mons"):
                name = mon.get("name", "")
                store = mon.get("store_stats") or {}
                samples.extend([
                    CAPACITY.sample(number(mon, "kb_total") * 1024, name),
                    USED.sample(number(mon, "kb_used") * 1024, name),
                    AVAIL.sample(number(mon, "kb_avail") * 1024, name),
                    AVAIL_PERCENT.sample(number(mon, "avail_percent"), name),
                    STORE_CAPACITY.sample(number(store, "bytes_total"), name),
                    STORE_SST.sample(number(store, "bytes_sst"), name),
                    STORE_LOG.sample(number(store, "bytes_log"), name),
                    STORE_MISC.sample(number(store, "bytes_misc"), name),
                ])

        for mon in object_list(health.get("timechecks") or {}, "mons"):
            name = mon.get("name", "")
            samples.append(CLOCK_SKEW.sample(number(mon, "skew"), name))
            samples.append(LATENCY.sample(number(mon, "latency"), name))

        quorum = status.get("quorum") or []
        if not isinstance(quorum, list):
            raise ParseError("quorum is not a list", field="quorum")
        samples.append(QUORUM_COUNT.sample(len(quorum)))
        return samples

    def _time_sync(self) -> List[MetricSample]:
        samples = []
        skew_status = self.admin_json("time-sync-status").get("time_skew_status") or {}
        for name, mon in skew_status.items():
            if isinstance(mon, dict):
                samples.append(CLOCK_SKEW.sample(number(mon, "skew"), name))
                samples.append(LATENCY.sample(number(mon, "latency"), name))
        return samples

    def _versions(self) -> List[MetricSample]:
        samples = []
        versions = parse_ceph_versions(self.admin_command("versions"))
        for daemon, counts in versions.items():
            for banner, count in counts.items():
                parsed = extractors.parse_version_banner(banner)
                if parsed is None:
                    samples.append(VERSIONS.sample(count, daemon, UNKNOWN, UNKNOWN, UNKNOWN))
                else:
                    samples.append(VERSIONS.sample(count, daemon, *parsed))
        return samples

    def _features(self) -> List[MetricSample]:
        samples = []
        features: Dict[str, Any] = self.admin_json("features")
        for daemon, groups in features.items():
            # non-list entries carry no feature groups
            if not isinstance(groups, list):
                continue
            for group in groups:
                if not isinstance(group, dict):
                    continue
                samples.append(FEATURES.sample(number(group, "num"), daemon,
                                               group.get("release", ""), group.get("features", "")))
        return samples
