# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Cluster health, PG state counts and cluster wide I/O rates from ``ceph status``.

The JSON form of ``status`` carries the health checks, the pgmap, osdmap,
mgrmap and service map. The plain text form is read afterwards for the
recovery, client and cache I/O lines; values found there replace the JSON
values of the same gauge.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ceph_exporter import extractors
from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.errors import ParseError, TransportError
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import number, object_list, parse_mgrmap, parse_osdmap
from ceph_exporter.version import PACIFIC, Version

LOG = logging.getLogger(__name__)

HEALTH_OK = "HEALTH_OK"
HEALTH_WARN = "HEALTH_WARN"
HEALTH_ERR = "HEALTH_ERR"

HEALTH_STATUS_VALUES = {HEALTH_OK: 0, HEALTH_WARN: 1, HEALTH_ERR: 2}
HEALTH_INTERP_VALUES = {HEALTH_OK: 0, HEALTH_WARN: 2, HEALTH_ERR: 3}

# 1 is a soft warning, 2 a critical one
HEALTH_CHECK_SEVERITY = {
    "AUTH_BAD_CAPS": 2,
    "BLUEFS_AVAILABLE_SPACE": 1,
    "BLUEFS_LOW_SPACE": 1,
    "BLUEFS_SPILLOVER": 1,
    "BLUESTORE_DISK_SIZE_MISMATCH": 1,
    "BLUESTORE_FRAGMENTATION": 1,
    "BLUESTORE_LEGACY_STATFS": 1,
    "BLUESTORE_NO_COMPRESSION": 1,
    "BLUESTORE_NO_PER_POOL_MAP": 1,
    "CACHE_POOL_NEAR_FULL": 1,
    "CACHE_POOL_NO_HIT_SET": 1,
    "DEVICE_HEALTH": 1,
    "DEVICE_HEALTH_IN_USE": 2,
    "DEVICE_HEALTH_TOOMANY": 2,
    "LARGE_OMAP_OBJECTS": 1,
    "MANY_OBJECTS_PER_PG": 1,
    "MGR_DOWN": 2,
    "MGR_MODULE_DEPENDENCY": 1,
    "MGR_MODULE_ERROR": 2,
    "MON_CLOCK_SKEW": 2,
    "MON_DISK_BIG": 1,
    "MON_DISK_CRIT": 2,
    "MON_DISK_LOW": 2,
    "MON_DOWN": 2,
    "MON_MSGR2_NOT_ENABLED": 2,
    "OBJECT_MISPLACED": 1,
    "OBJECT_UNFOUND": 2,
    "OLD_CRUSH_STRAW_CALC_VERSION": 1,
    "OLD_CRUSH_TUNABLES": 2,
    "OSDMAP_FLAGS": 1,
    "OSD_BACKFILLFULL": 2,
    "OSD_CHASSIS_DOWN": 1,
    "OSD_DATACENTER_DOWN": 1,
    "OSD_DOWN": 1,
    "OSD_FLAGS": 1,
    "OSD_FULL": 2,
    "OSD_HOST_DOWN": 1,
    "OSD_NEARFULL": 2,
    "OSD_NO_DOWN_OUT_INTERVAL": 2,
    "OSD_NO_SORTBITWISE": 2,
    "OSD_ORPHAN": 2,
    "OSD_OSD_DOWN": 1,
    "OSD_OUT_OF_ORDER_FULL": 2,
    "OSD_PDU_DOWN": 1,
    "OSD_POD_DOWN": 1,
    "OSD_RACK_DOWN": 1,
    "OSD_REGION_DOWN": 1,
    "OSD_ROOM_DOWN": 1,
    "OSD_ROOT_DOWN": 1,
    "OSD_ROW_DOWN": 1,
    "OSD_SCRUB_ERRORS": 2,
    "OSD_TOO_MANY_REPAIRS": 1,
    "PG_AVAILABILITY": 1,
    "PG_BACKFILL_FULL": 2,
    "PG_DAMAGED": 2,
    "PG_DEGRADED": 1,
    "PG_NOT_DEEP_SCRUBBED": 1,
    "PG_NOT_SCRUBBED": 1,
    "PG_RECOVERY_FULL": 2,
    "PG_SLOW_SNAP_TRIMMING": 1,
    "POOL_APP_NOT_ENABLED": 2,
    "POOL_FULL": 2,
    "POOL_NEAR_FULL": 2,
    "POOL_TARGET_SIZE_BYTES_OVERCOMMITTED": 1,
    "POOL_TARGET_SIZE_RATIO_OVERCOMMITTED": 1,
    "POOL_TOO_FEW_PGS": 1,
    "POOL_TOO_MANY_PGS": 1,
    "RECENT_CRASH": 1,
    "SLOW_OPS": 1,
    "SMALLER_PGP_NUM": 1,
    "TELEMETRY_CHANGED": 1,
    "TOO_FEW_OSDS": 1,
    "TOO_FEW_PGS": 1,
    "TOO_MANY_PGS": 1,
}


def health_check_severity(version: Version) -> Dict[str, int]:
    """Severity table for the given release."""
    table = dict(HEALTH_CHECK_SEVERITY)
    if version.is_at_least(PACIFIC):
        table["DAEMON_OLD_VERSION"] = 2
    return table


HEALTH_STATUS = MetricDef("health_status",
                          "Health status of Cluster, can vary only between 3 states (err:2, warn:1, ok:0)")
HEALTH_STATUS_INTERP = MetricDef(
    "health_status_interp",
    "Health status of Cluster, can vary only between 4 states (err:3, critical_warn:2, soft_warn:1, ok:0)")

MONS_DOWN = MetricDef("mons_down", "Count of Mons that are in DOWN state")
SLOW_REQUESTS = MetricDef("slow_requests", "No. of slow requests/slow ops")
NEW_CRASH_REPORTS = MetricDef("new_crash_reports", "Number of new crash reports available")
OSDS_TOO_MANY_REPAIR = MetricDef("osds_too_many_repair", "Number of OSDs with too many repaired reads")
OSD_MAP_FLAGS = MetricDef("osd_map_flags", "A metric for all OSDMap flags", ("flag",))

STUCK_PGS = {
    "degraded": MetricDef("stuck_degraded_pgs", "No. of PGs stuck in a degraded state"),
    "unclean": MetricDef("stuck_unclean_pgs", "No. of PGs stuck in an unclean state"),
    "undersized": MetricDef("stuck_undersized_pgs", "No. of stuck undersized PGs in the cluster"),
    "stale": MetricDef("stuck_stale_pgs", "No. of stuck stale PGs in the cluster"),
}

LEGACY_OSDMAP_FLAGS = {
    "full": "The cluster is flagged as full and cannot service writes",
    "pauserd": "Reads are paused",
    "pausewr": "Writes are paused",
    "noup": "OSDs are not allowed to start",
    "nodown": "OSD failure reports are ignored, OSDs will not be marked as down",
    "noin": "OSDs that are out will not be automatically marked in",
    "noout": "OSDs will not be automatically marked out after the configured interval",
    "nobackfill": "OSDs will not be backfilled",
    "norecover": "Recovery is suspended",
    "norebalance": "Data rebalancing is suspended",
    "noscrub": "Scrubbing is disabled",
    "nodeep-scrub": "Deep scrubbing is disabled",
    "notieragent": "Cache tiering activity is suspended",
}
OSDMAP_FLAG_GAUGES = {
    flag: MetricDef(f"osdmap_flag_{flag.replace('-', '_')}", doc)
    for flag, doc in LEGACY_OSDMAP_FLAGS.items()
}

# state substring -> (gauge name, pg_state label)
PG_STATES = {
    "degraded": ("degraded_pgs", "No. of PGs in a degraded state"),
    "active": ("active_pgs", "No. of active PGs in the cluster"),
    "unclean": ("unclean_pgs", "No. of PGs in an unclean state"),
    "undersized": ("undersized_pgs", "No. of undersized PGs in the cluster"),
    "peering": ("peering_pgs", "No. of peering PGs in the cluster"),
    "stale": ("stale_pgs", "No. of stale PGs in the cluster"),
    "scrubbing": ("scrubbing_pgs", "No. of scrubbing PGs in the cluster"),
    "scrubbing+deep": ("deep_scrubbing_pgs", "No. of deep scrubbing PGs in the cluster"),
    "recovering": ("recovering_pgs", "No. of recovering PGs in the cluster"),
    "recovery_wait": ("recovery_wait_pgs", "No. of PGs in the cluster with recovery_wait state"),
    "backfilling": ("backfilling_pgs", "No. of backfilling PGs in the cluster"),
    "backfill_wait": ("backfill_wait_pgs", "No. of PGs in the cluster with backfill_wait state"),
    "forced_recovery": ("forced_recovery_pgs", "No. of PGs in the cluster with forced_recovery state"),
    "forced_backfill": ("forced_backfill_pgs", "No. of PGs in the cluster with forced_backfill state"),
    "down": ("down_pgs", "No. of PGs in the cluster in down state"),
    "incomplete": ("incomplete_pgs", "No. of PGs in the cluster in incomplete state"),
    "inconsistent": ("inconsistent_pgs", "No. of PGs in the cluster in inconsistent state"),
    "snaptrim": ("snaptrim_pgs", "No. of snaptrim PGs in the cluster"),
    "snaptrim_wait": ("snaptrim_wait_pgs", "No. of PGs in the cluster with snaptrim_wait state"),
    "repair": ("repairing_pgs", "No. of PGs in the cluster with repair state"),
}
PG_STATE_GAUGES = {state: MetricDef(name, doc) for state, (name, doc) in PG_STATES.items()}
PG_STATE = MetricDef("pg_state", "State of PGs in the cluster", ("state",))

TOTAL_PGS = MetricDef("total_pgs", "Total no. of PGs in the cluster")
CLUSTER_OBJECTS = MetricDef("cluster_objects", "No. of rados objects within the cluster")
DEGRADED_OBJECTS = MetricDef("degraded_objects", "No. of degraded objects across all PGs, includes replicas")
MISPLACED_OBJECTS = MetricDef("misplaced_objects", "No. of misplaced objects across all PGs, includes replicas")
MISPLACED_RATIO = MetricDef("misplaced_ratio", "ratio of misplaced objects to total objects")

CLIENT_IO_READ_BYTES = MetricDef("client_io_read_bytes", "Rate of bytes being read by all clients per second")
CLIENT_IO_WRITE_BYTES = MetricDef("client_io_write_bytes", "Rate of bytes being written by all clients per second")
CLIENT_IO_OPS = MetricDef("client_io_ops", "Total client ops on the cluster measured per second")
CLIENT_IO_READ_OPS = MetricDef("client_io_read_ops",
                               "Total client read I/O ops on the cluster measured per second")
CLIENT_IO_WRITE_OPS = MetricDef("client_io_write_ops",
                                "Total client write I/O ops on the cluster measured per second")
RECOVERY_IO_BYTES = MetricDef("recovery_io_bytes", "Rate of bytes being recovered in cluster per second")
RECOVERY_IO_KEYS = MetricDef("recovery_io_keys", "Rate of keys being recovered in cluster per second")
RECOVERY_IO_OBJECTS = MetricDef("recovery_io_objects", "Rate of objects being recovered in cluster per second")
CACHE_FLUSH_IO_BYTES = MetricDef("cache_flush_io_bytes", "Rate of bytes being flushed from the cache pool per second")
CACHE_EVICT_IO_BYTES = MetricDef("cache_evict_io_bytes", "Rate of bytes being evicted from the cache pool per second")
CACHE_PROMOTE_IO_OPS = MetricDef("cache_promote_io_ops", "Total cache promote operations measured per second")

OSDS = MetricDef("osds", "Count of total OSDs in the cluster")
OSDS_UP = MetricDef("osds_up", "Count of OSDs that are in UP state")
OSDS_IN = MetricDef("osds_in", "Count of OSDs that are in IN state and available to serve requests")
OSDS_DOWN = MetricDef("osds_down", "Count of OSDs that are in DOWN state")
PGS_REMAPPED = MetricDef("pgs_remapped", "No. of PGs that are remapped and incurring cluster-wide movement")

MGRS_ACTIVE = MetricDef("mgrs_active", "Count of active mgrs, can be either 0 or 1")
MGRS = MetricDef("mgrs", "Total number of mgrs, including standbys")

RBD_MIRROR_UP = MetricDef("rbd_mirror_up", "Alive rbd-mirror daemons", ("name",))


def count_pg_states(pgs_by_state: List[Dict[str, Any]]) -> Dict[str, float]:
    """
    Bucket ``pgmap.pgs_by_state`` by substring containment.

    A compound state such as ``active+clean+scrubbing+deep`` counts towards
    every bucket it contains. Deep scrubs are then removed from the plain
    scrubbing bucket and snaptrim_wait from snaptrim.
    """
    counts = {state: 0.0 for state in PG_STATES}
    for entry in pgs_by_state:
        state_name = str(entry.get("state_name", ""))
        count = number(entry, "count")
        for state in counts:
            if state in state_name:
                counts[state] += count
    counts["scrubbing"] -= counts["scrubbing+deep"]
    counts["snaptrim"] -= counts["snaptrim_wait"]
    return counts


class ClusterHealthCollector(Collector):
    name = "health"

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        status = self.admin_json("status")
        gauges: Dict[MetricDef, float] = {}
        samples: List[MetricSample] = []

        self._health(status, ctx.version, gauges, samples)
        self._pgmap(status.get("pgmap") or {}, gauges, samples)

        osdmap = parse_osdmap(status, ctx.version)
        gauges[OSDS] = osdmap.num_osds
        gauges[OSDS_UP] = osdmap.num_up_osds
        gauges[OSDS_IN] = osdmap.num_in_osds
        gauges[OSDS_DOWN] = osdmap.num_down_osds
        gauges[PGS_REMAPPED] = osdmap.num_remapped_pgs

        mgrmap = parse_mgrmap(status, ctx.version)
        gauges[MGRS_ACTIVE] = mgrmap.active
        gauges[MGRS] = mgrmap.total

        samples.extend(self._rbd_mirror_daemons(status))

        try:
            gauges.update(self._plain_status_rates())
        except (TransportError, ParseError) as e:
            LOG.warning(f"[{self.cluster}] plain status unavailable, keeping JSON rates: {e}")

        samples.extend(metric.sample(value) for metric, value in gauges.items())
        return samples

    def _health(self, status: Dict[str, Any], version: Version,
                gauges: Dict[MetricDef, float], samples: List[MetricSample]) -> None:
        health = status.get("health") or {}
        overall = health.get("status", "")
        if overall in HEALTH_STATUS_VALUES:
            gauges[HEALTH_STATUS] = HEALTH_STATUS_VALUES[overall]
            gauges[HEALTH_STATUS_INTERP] = HEALTH_INTERP_VALUES[overall]
        else:
            LOG.warning(f"[{self.cluster}] unknown health status {overall!r}")

        for entry in object_list(health, "summary"):
            text = str(entry.get("summary", ""))
            for kind, metric in STUCK_PGS.items():
                value = extractors.stuck_pgs(text, kind)
                if value is not None:
                    gauges[metric] = value
            ops = extractors.slow_ops(text)
            if ops is not None:
                gauges[SLOW_REQUESTS] = ops[0]

        for metric in OSDMAP_FLAG_GAUGES.values():
            gauges[metric] = 0

        checks = health.get("checks") or {}
        if not isinstance(checks, dict):
            raise ParseError("health.checks is not an object", field="health.checks")

        severity = health_check_severity(version)
        worst: Optional[int] = None
        for check_name, check in checks.items():
            message = str(((check or {}).get("summary") or {}).get("message", ""))
            if check_name == "MON_DOWN":
                down = extractors.mons_down(message)
                if down is not None:
                    gauges[MONS_DOWN] = down[0]
            elif check_name == "SLOW_OPS":
                ops = extractors.slow_ops(message)
                if ops is not None:
                    gauges[SLOW_REQUESTS] = ops[0]
            elif check_name == "RECENT_CRASH":
                crashes = extractors.recent_crashes(message)
                if crashes is not None:
                    gauges[NEW_CRASH_REPORTS] = crashes
            elif check_name == "OSD_TOO_MANY_REPAIRS":
                repairs = extractors.too_many_repairs(message)
                if repairs is not None:
                    gauges[OSDS_TOO_MANY_REPAIR] = repairs
            elif check_name == "OSDMAP_FLAGS":
                for flag in extractors.osdmap_flags(message) or []:
                    samples.append(OSD_MAP_FLAGS.sample(1, flag))
                    if flag in OSDMAP_FLAG_GAUGES:
                        gauges[OSDMAP_FLAG_GAUGES[flag]] = 1

            if check_name in severity:
                worst = max(worst or 0, severity[check_name])

        if worst is not None:
            gauges[HEALTH_STATUS_INTERP] = worst

    def _pgmap(self, pgmap: Dict[str, Any], gauges: Dict[MetricDef, float], samples: List[MetricSample]) -> None:
        counts = count_pg_states(object_list(pgmap, "pgs_by_state"))
        for state, value in counts.items():
            gauges[PG_STATE_GAUGES[state]] = value
            samples.append(PG_STATE.sample(value, "deep_scrubbing" if state == "scrubbing+deep" else state))

        read_ops = number(pgmap, "read_op_per_sec")
        write_ops = number(pgmap, "write_op_per_sec")
        gauges.update({
            TOTAL_PGS: number(pgmap, "num_pgs"),
            CLUSTER_OBJECTS: number(pgmap, "num_objects"),
            DEGRADED_OBJECTS: number(pgmap, "degraded_objects"),
            MISPLACED_OBJECTS: number(pgmap, "misplaced_objects"),
            MISPLACED_RATIO: number(pgmap, "misplaced_ratio"),
            CLIENT_IO_READ_BYTES: number(pgmap, "read_bytes_sec"),
            CLIENT_IO_WRITE_BYTES: number(pgmap, "write_bytes_sec"),
            CLIENT_IO_OPS: read_ops + write_ops,
            CLIENT_IO_READ_OPS: read_ops,
            CLIENT_IO_WRITE_OPS: write_ops,
            RECOVERY_IO_BYTES: number(pgmap, "recovering_bytes_per_sec"),
            RECOVERY_IO_KEYS: number(pgmap, "recovering_keys_per_sec"),
            RECOVERY_IO_OBJECTS: number(pgmap, "recovering_objects_per_sec"),
            CACHE_FLUSH_IO_BYTES: number(pgmap, "flush_bytes_sec"),
            CACHE_EVICT_IO_BYTES: number(pgmap, "evict_bytes_sec"),
            CACHE_PROMOTE_IO_OPS: number(pgmap, "promote_op_per_sec"),
        })

    def _rbd_mirror_daemons(self, status: Dict[str, Any]) -> List[MetricSample]:
        services = (status.get("servicemap") or {}).get("services") or {}
        daemons = (services.get("rbd-mirror") or {}).get("daemons") or {}
        samples = []
        for name, daemon in daemons.items():
            if name == "summary" or not isinstance(daemon, dict):
                continue
            metadata = daemon.get("metadata") or {}
            samples.append(RBD_MIRROR_UP.sample(1, metadata.get("id", "")))
        return samples

    def _plain_status_rates(self) -> Dict[MetricDef, float]:
        """
        Rates read from the plain text ``status`` lines.

        Scanning stops at the ``cluster:`` section header.
        """
        text = self.admin_command("status", fmt="plain").decode(errors="replace")
        rates: Dict[MetricDef, float] = {}
        for raw in text.splitlines():
            line = raw.strip()
            if line == "cluster:":
                break
            if line.startswith(("recovery io", "recovery:")):
                self._recovery_line(line, rates)
            elif line.startswith(("client io", "client:")):
                self._client_line(line, rates)
            elif line.startswith("cache io"):
                self._cache_line(line, rates)
        return rates

    def _byte_rate(self, rates: Dict[MetricDef, float], metric: MetricDef, extract, *args) -> None:
        # an unknown unit drops this one gauge only
        try:
            value = extract(*args)
        except ParseError as e:
            LOG.warning(f"[{self.cluster}] {metric.name}: {e}")
            return
        if value is not None:
            rates[metric] = value

    def _recovery_line(self, line: str, rates: Dict[MetricDef, float]) -> None:
        self._byte_rate(rates, RECOVERY_IO_BYTES, extractors.recovery_rate, line)
        keys = extractors.keys_rate(line)
        if keys is not None:
            rates[RECOVERY_IO_KEYS] = keys
        objects = extractors.objects_rate(line)
        if objects is not None:
            rates[RECOVERY_IO_OBJECTS] = objects

    def _client_line(self, line: str, rates: Dict[MetricDef, float]) -> None:
        self._byte_rate(rates, CLIENT_IO_READ_BYTES, extractors.rate_bytes, line, "rd")
        self._byte_rate(rates, CLIENT_IO_WRITE_BYTES, extractors.rate_bytes, line, "wr")

        read_ops = extractors.ops_rate(line, "rd")
        write_ops = extractors.ops_rate(line, "wr")
        if read_ops is not None:
            rates[CLIENT_IO_READ_OPS] = read_ops
        if write_ops is not None:
            rates[CLIENT_IO_WRITE_OPS] = write_ops

        # releases before Jewel print one total instead of rd/wr
        total = extractors.legacy_total_ops(line)
        if not total:
            total = (read_ops or 0) + (write_ops or 0)
        rates[CLIENT_IO_OPS] = total

    def _cache_line(self, line: str, rates: Dict[MetricDef, float]) -> None:
        self._byte_rate(rates, CACHE_FLUSH_IO_BYTES, extractors.rate_bytes, line, "flush")
        self._byte_rate(rates, CACHE_EVICT_IO_BYTES, extractors.rate_bytes, line, "evict")
        promote = extractors.ops_rate(line, "promote")
        if promote is not None:
            rates[CACHE_PROMOTE_IO_OPS] = promote
