# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
from conftest import FakeConnection, find, value
from ceph_exporter.collectors.base import ScrapeContext
from ceph_exporter.collectors.mds import MDSCollector, slow_request_daemons
from ceph_exporter.errors import TransportError
from ceph_exporter.metrics import GAUGE
from ceph_exporter.writer.prometheus_writer import build_families

MDS_STAT = {"fsmap": {"filesystems": [
    {"mdsmap": {"fs_name": "cephfs-1", "info": {
        "gid_1": {"name": "MDS-daemonC", "rank": 1, "state": "up:active"},
        "gid_2": {"name": "MDS-daemonD", "rank": 2, "state": "up:standby-replay"},
    }}, "id": 1},
    {"mdsmap": {"fs_name": "cephfs-2", "info": {
        "gid_3": {"name": "MDS-daemonA", "rank": 1, "state": "up:active"},
    }}, "id": 2},
]}}

HEALTH_DETAIL = {"status": "HEALTH_WARN", "checks": {"MDS_SLOW_REQUEST": {
    "severity": "HEALTH_WARN",
    "summary": {"message": "2 MDSs report slow requests"},
    "detail": [
        {"message": "mds.a(mds.0): 3 slow requests are blocked > 30 secs"},
        {"message": "mds.b(mds.1): 1 slow requests are blocked > 30 secs"},
        {"message": "not a daemon message"},
    ],
}}}

MDS_A_STATUS = {"cluster_fsid": "abc", "whoami": 0, "fs_name": "cephfs-1", "state": "up:active"}

MDS_A_BLOCKED = {"ops": [
    {"description": "client_request(client.4567:89 getattr #0x10000000001 2024-01-01T00:00:00.000000+0000 caller_uid=0)",
     "type_data": {"op_type": "client_request", "flag_point": "failed to rdlock, waiting"}},
    {"description": "client_request(client.4567:90 getattr #0x10000000002 2024-01-01T00:00:00.000000+0000 caller_uid=0)",
     "type_data": {"op_type": "client_request", "flag_point": "failed to rdlock, waiting"}},
    {"description": "client_request(client.11:1 lookup #0x1/dir 2024-01-01 caller_uid=0)",
     "type_data": {"op_type": "client_request", "flag_point": "dispatched"}},
    {"description": "client_request(broken)",
     "type_data": {"op_type": "client_request", "flag_point": "dispatched"}},
    {"description": "peer_request(mds.1:2)",
     "type_data": {"op_type": "peer_request", "flag_point": "dispatched"}},
], "complaint_time": 30, "num_blocked_ops": 5}


def collector(**background):
    answers = {
        "mds stat": MDS_STAT,
        "health detail": HEALTH_DETAIL,
        "tell mds.a status": MDS_A_STATUS,
        "tell mds.a dump_blocked_ops": MDS_A_BLOCKED,
        "tell mds.b status": TransportError("mds.b unreachable"),
    }
    answers.update(background)
    return MDSCollector(FakeConnection(background=answers), "test", "/etc/ceph/ceph.conf", "admin")


class TestSlowRequestDaemons:

    def test_names(self):
        assert slow_request_daemons(HEALTH_DETAIL) == ["mds.a", "mds.b"]

    def test_no_check(self):
        assert slow_request_daemons({"checks": {}}) == []
        assert slow_request_daemons({}) == []


class TestMDSCollector:

    def test_daemon_states(self):
        samples = collector().collect(ScrapeContext())
        assert value(samples, "mds_daemon_state", fs="cephfs-1", name="MDS-daemonC", rank=1, state="up:active") == 1
        assert value(samples, "mds_daemon_state", fs="cephfs-1", name="MDS-daemonD", rank=2,
                     state="up:standby-replay") == 1
        assert value(samples, "mds_daemon_state", fs="cephfs-2", name="MDS-daemonA") == 1
        assert len(find(samples, "mds_daemon_state")) == 3

    def test_blocked_ops_aggregated(self):
        samples = collector().collect(ScrapeContext())
        assert value(samples, "mds_blocked_ops", fs="cephfs-1", name="mds.a", state="up:active",
                     optype="client_request", fs_optype="getattr",
                     flag_point="failed to rdlock, waiting") == 2
        assert value(samples, "mds_blocked_ops", optype="client_request", fs_optype="lookup") == 1
        assert value(samples, "mds_blocked_ops", optype="peer_request", fs_optype="") == 1
        # the unparseable description is skipped, mds.b is unreachable
        assert len(find(samples, "mds_blocked_ops")) == 3
        assert find(samples, "mds_blocked_ops", name="mds.b") == []

    def test_blocked_ops_series_name(self):
        samples = collector().collect(ScrapeContext())
        assert all(s.metric.kind == GAUGE for s in find(samples, "mds_blocked_ops"))
        family = [f for f in build_families([("test", samples)]) if f.name == "ceph_mds_blocked_ops"][0]
        assert {s.name for s in family.samples} == {"ceph_mds_blocked_ops"}

    def test_argv(self):
        mds = collector()
        mds.collect(ScrapeContext())
        assert mds.conn.background_calls[0] == [
            "/usr/bin/ceph", "-c", "/etc/ceph/ceph.conf", "-n", "client.admin", "mds", "stat", "--format", "json"]
        assert ["/usr/bin/ceph", "-c", "/etc/ceph/ceph.conf", "-n", "client.admin",
                "tell", "mds.a", "dump_blocked_ops", "--format", "json"] in mds.conn.background_calls

    def test_stat_failure_keeps_blocked_ops(self):
        samples = collector(**{"mds stat": TransportError("timeout")}).collect(ScrapeContext())
        assert find(samples, "mds_daemon_state") == []
        assert len(find(samples, "mds_blocked_ops")) == 3

    def test_health_detail_failure_keeps_states(self):
        samples = collector(**{"health detail": b"nope"}).collect(ScrapeContext())
        assert len(find(samples, "mds_daemon_state")) == 3
        assert find(samples, "mds_blocked_ops") == []
