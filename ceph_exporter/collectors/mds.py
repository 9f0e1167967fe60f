# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
CephFS metadata server state and blocked operations.

Everything here goes through the ``ceph`` CLI: ``ceph tell`` has to reach
each MDS daemon directly, which the manager endpoint cannot do.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List

from ceph_exporter import extractors
from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.errors import ParseError, TransportError
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import load_json_object, number, object_list

LOG = logging.getLogger(__name__)

CEPH_CLI_PATH = "/usr/bin/ceph"
SLOW_REQUEST_CHECK = "MDS_SLOW_REQUEST"
CLIENT_REQUEST = "client_request"

MDS_DAEMON_STATE = MetricDef("mds_daemon_state", "MDS Daemon State", ("fs", "name", "rank", "state"))
# gauge: exposed as ceph_mds_blocked_ops, without a _total suffix
MDS_BLOCKED_OPS = MetricDef("mds_blocked_ops", "MDS Blocked Ops",
                            ("fs", "name", "state", "optype", "fs_optype", "flag_point"))


def slow_request_daemons(health_detail: Dict) -> List[str]:
    """
    MDS daemon names from the MDS_SLOW_REQUEST health check.

    Detail messages look like ``mds.a(mds.0): 3 slow requests are blocked``.
    """
    check = (health_detail.get("checks") or {}).get(SLOW_REQUEST_CHECK)
    if not check:
        return []
    names = []
    for detail in object_list(check, "detail"):
        message = str(detail.get("message", ""))
        parts = message.split("(")
        if len(parts) != 2:
            LOG.error(f"invalid mds slow request message found, check syntax: {message!r}")
            continue
        names.append(parts[0])
    return names


class MDSCollector(Collector):
    name = "mds"

    def __init__(self, conn, cluster: str, config_file: str, user: str, binary: str = CEPH_CLI_PATH):
        """
        Args:
            conn: CephConnection
            cluster: Cluster label
            config_file: Path of ceph.conf passed to the CLI
            user: Ceph user (without the ``client.`` prefix)
            binary: ceph executable
        """
        super().__init__(conn, cluster)
        self.config_file = config_file
        self.user = user
        self.binary = binary

    def _ceph(self, *args: str) -> bytes:
        argv = [self.binary, "-c", self.config_file, "-n", f"client.{self.user}", *args, "--format", "json"]
        return self.conn.run_background_command(argv)

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        return self.collect_parts([self._daemon_states, self._blocked_ops])

    def _daemon_states(self) -> List[MetricSample]:
        stat = load_json_object(self._ceph("mds", "stat"), "mds stat")
        samples = []
        for fs in object_list(stat.get("fsmap") or {}, "filesystems"):
            mdsmap = fs.get("mdsmap") or {}
            fs_name = mdsmap.get("fs_name", "")
            for info in (mdsmap.get("info") or {}).values():
                if not isinstance(info, dict):
                    continue
                samples.append(MDS_DAEMON_STATE.sample(
                    1, fs_name, info.get("name", ""), int(number(info, "rank")), info.get("state", "")))
        return samples

    def _blocked_ops(self) -> List[MetricSample]:
        health = load_json_object(self._ceph("health", "detail"), "health detail")
        samples = []
        for daemon in slow_request_daemons(health):
            try:
                samples.extend(self._daemon_blocked_ops(daemon))
            except (TransportError, ParseError) as e:
                LOG.error(f"[{self.cluster}] mds {daemon}: blocked ops unavailable: {e}")
        return samples

    def _daemon_blocked_ops(self, daemon: str) -> List[MetricSample]:
        status = load_json_object(self._ceph("tell", daemon, "status"), "mds status")
        blocked = load_json_object(self._ceph("tell", daemon, "dump_blocked_ops"), "dump_blocked_ops")
        fs_name = status.get("fs_name", "")
        state = status.get("state", "")

        counts: Counter = Counter()
        for op in object_list(blocked, "ops"):
            type_data = op.get("type_data") or {}
            op_type = type_data.get("op_type", "")
            fs_op_type = ""
            if op_type == CLIENT_REQUEST:
                try:
                    fs_op_type, _, _ = extractors.parse_mds_op_description(str(op.get("description", "")))
                except ParseError as e:
                    LOG.error(f"[{self.cluster}] mds {daemon}: failed parsing blocked op description: {e}")
                    continue
            counts[(op_type, fs_op_type, type_data.get("flag_point", ""))] += 1

        return [MDS_BLOCKED_OPS.sample(count, fs_name, daemon, state, op_type, fs_op_type, flag_point)
                for (op_type, fs_op_type, flag_point), count in counts.items()]
