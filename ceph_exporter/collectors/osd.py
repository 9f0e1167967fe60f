# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Per-OSD capacity, latency, state and scrub activity.

Every per-OSD family carries the CRUSH ancestry labels of the OSD, taken from
the topology table the orchestrator refreshes before the scrape. The five
sub-requests fail independently of each other.
"""

import logging
from typing import Iterable, List, Optional

from ceph_exporter.cache.inactive_pg import InactivePGTracker
from ceph_exporter.cache.scrub_cache import ScrubState, ScrubStateCache
from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.enrichment.osd_enrichment import OSDLabels, OSDTopologyResolver
from ceph_exporter.errors import ParseError
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import load_json_object, number, object_list, parse_pg_dump_brief

LOG = logging.getLogger(__name__)

OSD_LABELS = ("osd", "device_class", "host", "rack", "root")

CRUSH_WEIGHT = MetricDef("osd_crush_weight", "OSD Crush Weight", OSD_LABELS)
DEPTH = MetricDef("osd_depth", "OSD Depth", OSD_LABELS)
REWEIGHT = MetricDef("osd_reweight", "OSD Reweight", OSD_LABELS)
BYTES = MetricDef("osd_bytes", "OSD Total Bytes", OSD_LABELS)
USED_BYTES = MetricDef("osd_used_bytes", "OSD Used Storage in Bytes", OSD_LABELS)
AVAIL_BYTES = MetricDef("osd_avail_bytes", "OSD Available Storage in Bytes", OSD_LABELS)
UTILIZATION = MetricDef("osd_utilization", "OSD Utilization", OSD_LABELS)
VARIANCE = MetricDef("osd_variance", "OSD Variance", OSD_LABELS)
PGS = MetricDef("osd_pgs", "OSD Placement Group Count", OSD_LABELS)

TOTAL_BYTES = MetricDef("osd_total_bytes", "OSD Total Storage Bytes")
TOTAL_USED_BYTES = MetricDef("osd_total_used_bytes", "OSD Total Used Storage Bytes")
TOTAL_AVAIL_BYTES = MetricDef("osd_total_avail_bytes", "OSD Total Available Storage Bytes")
AVERAGE_UTILIZATION = MetricDef("osd_average_utilization", "OSD Average Utilization")

COMMIT_LATENCY = MetricDef("osd_perf_commit_latency_seconds", "OSD Perf Commit Latency", OSD_LABELS)
APPLY_LATENCY = MetricDef("osd_perf_apply_latency_seconds", "OSD Perf Apply Latency", OSD_LABELS)

OSD_IN = MetricDef("osd_in", "OSD In Status", OSD_LABELS)
OSD_UP = MetricDef("osd_up", "OSD Up Status", OSD_LABELS)
OSD_FULL = MetricDef("osd_full", "OSD Full Status", OSD_LABELS)
OSD_NEAR_FULL = MetricDef("osd_near_full", "OSD Near Full Status", OSD_LABELS)
OSD_BACKFILL_FULL = MetricDef("osd_backfill_full", "OSD Backfill Full Status", OSD_LABELS)
FULL_RATIO = MetricDef("osd_full_ratio", "OSD Full Ratio Value")
NEAR_FULL_RATIO = MetricDef("osd_near_full_ratio", "OSD Near Full Ratio Value")
BACKFILL_FULL_RATIO = MetricDef("osd_backfill_full_ratio", "OSD Backfill Full Ratio Value")
PG_UPMAP_ITEMS_TOTAL = MetricDef("osd_pg_upmap_items_total", "OSD PG-Upmap Exception Table Entry Count")

OSD_DOWN = MetricDef("osd_down", "Number of OSDs down in the cluster",
                     ("osd", "status", "device_class", "host", "rack", "root"))
SCRUB_STATE = MetricDef("osd_scrub_state",
                        "State of OSDs involved in a scrub (0 idle, 1 scrubbing, 2 deep scrubbing)", OSD_LABELS)
PG_OLDEST_INACTIVE = MetricDef("pg_oldest_inactive",
                               "The amount of time in seconds that the oldest PG has been inactive for")

# osd dump state flag -> family
STATE_FLAGS = {
    "full": OSD_FULL,
    "nearfull": OSD_NEAR_FULL,
    "backfillfull": OSD_BACKFILL_FULL,
}


def osd_label_values(name: str, labels: OSDLabels):
    return name, labels.device_class, labels.host, labels.rack, labels.root


class OSDCollector(Collector):
    name = "osd"

    def __init__(self, conn, cluster: str,
                 scrub_cache: Optional[ScrubStateCache] = None,
                 inactive_tracker: Optional[InactivePGTracker] = None):
        """
        Args:
            conn: CephConnection
            cluster: Cluster label
            scrub_cache: Scrub state kept between scrapes
            inactive_tracker: Inactive PG timestamps kept between scrapes
        """
        super().__init__(conn, cluster)
        self.scrub_cache = scrub_cache if scrub_cache is not None else ScrubStateCache()
        self.inactive_tracker = inactive_tracker if inactive_tracker is not None else InactivePGTracker()
        self.topology = OSDTopologyResolver()

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        self.topology = ctx.topology
        return self.collect_parts([
            self._osd_perf,
            self._osd_dump,
            self._osd_df,
            self._osd_tree_down,
            self._pg_dump,
        ])

    def _labels(self, osd_id: int):
        return osd_label_values(f"osd.{osd_id}", self.topology.labels_for_id(osd_id))

    def _osd_df(self) -> List[MetricSample]:
        # some releases print -nan for OSDs that are out
        buf = self.admin_command("osd df").replace(b"-nan", b"0")
        data = load_json_object(buf, "osd df")
        samples = []

        for node in object_list(data, "nodes"):
            name = node.get("name", "")
            labels = osd_label_values(name, self.topology.labels_for_name(name))
            samples.extend([
                CRUSH_WEIGHT.sample(number(node, "crush_weight"), *labels),
                DEPTH.sample(number(node, "depth"), *labels),
                REWEIGHT.sample(number(node, "reweight"), *labels),
                BYTES.sample(number(node, "kb") * 1024, *labels),
                USED_BYTES.sample(number(node, "kb_used") * 1024, *labels),
                AVAIL_BYTES.sample(number(node, "kb_avail") * 1024, *labels),
                UTILIZATION.sample(number(node, "utilization"), *labels),
                VARIANCE.sample(number(node, "var"), *labels),
                PGS.sample(number(node, "pgs"), *labels),
            ])

        summary = data.get("summary") or {}
        samples.extend([
            TOTAL_BYTES.sample(number(summary, "total_kb") * 1024),
            TOTAL_USED_BYTES.sample(number(summary, "total_kb_used") * 1024),
            TOTAL_AVAIL_BYTES.sample(number(summary, "total_kb_avail") * 1024),
            AVERAGE_UTILIZATION.sample(number(summary, "average_utilization")),
        ])
        return samples

    def _osd_perf(self) -> List[MetricSample]:
        data = self.admin_json("osd perf")
        infos = object_list(data.get("osdstats") or {}, "osd_perf_infos")
        samples = []
        for info in infos:
            osd_id = int(number(info, "id", None))
            stats = info.get("perf_stats") or {}
            labels = self._labels(osd_id)
            samples.append(COMMIT_LATENCY.sample(number(stats, "commit_latency_ms") / 1000, *labels))
            samples.append(APPLY_LATENCY.sample(number(stats, "apply_latency_ms") / 1000, *labels))
        return samples

    def _osd_dump(self) -> List[MetricSample]:
        data = self.admin_json("osd dump")
        upmap_items = data.get("pg_upmap_items") or []
        if not isinstance(upmap_items, list):
            raise ParseError("pg_upmap_items is not a list", field="pg_upmap_items")

        samples = [
            FULL_RATIO.sample(number(data, "full_ratio")),
            NEAR_FULL_RATIO.sample(number(data, "nearfull_ratio")),
            BACKFILL_FULL_RATIO.sample(number(data, "backfillfull_ratio")),
            PG_UPMAP_ITEMS_TOTAL.sample(len(upmap_items)),
        ]
        for osd in object_list(data, "osds"):
            labels = self._labels(int(number(osd, "osd", None)))
            samples.append(OSD_IN.sample(number(osd, "in"), *labels))
            samples.append(OSD_UP.sample(number(osd, "up"), *labels))
            states = osd.get("state") or []
            for flag, metric in STATE_FLAGS.items():
                samples.append(metric.sample(1 if flag in states else 0, *labels))
        return samples

    def _osd_tree_down(self) -> List[MetricSample]:
        data = self.admin_json("osd tree", states=["down"])
        samples = []
        for node in object_list(data, "nodes") + object_list(data, "stray"):
            if node.get("type") != "osd":
                continue
            name = node.get("name", "")
            labels = self.topology.labels_for_name(name)
            samples.append(OSD_DOWN.sample(1, name, node.get("status", ""), labels.device_class,
                                           labels.host, labels.rack, labels.root))
        return samples

    def _pg_dump(self) -> List[MetricSample]:
        pgs = parse_pg_dump_brief(self.admin_command("pg dump", dumpcontents=["pgs_brief"]))

        # a scrub that ended since the last scrape must read idle, not vanish
        self.scrub_cache.reset_all_to_idle()
        for pg in pgs:
            if "scrubbing" not in pg.state:
                continue
            state = ScrubState.DEEP_SCRUBBING if "deep" in pg.state else ScrubState.SCRUBBING
            for osd_id in pg.acting:
                self.scrub_cache.mark(osd_id, state)

        samples = [SCRUB_STATE.sample(int(state), *self._labels(osd_id))
                   for osd_id, state in sorted(self.scrub_cache.snapshot().items())]

        oldest = self.inactive_tracker.observe((pg.pgid, pg.state) for pg in pgs)
        samples.append(PG_OLDEST_INACTIVE.sample(oldest))
        return samples
