# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
from conftest import FakeConnection, find, value
from ceph_exporter.collectors.base import ScrapeContext
from ceph_exporter.collectors.monitors import MonitorCollector
from ceph_exporter.errors import TransportError

STATUS = {
    "health": {
        "health": {"health_services": [{"mons": [
            {"name": "mon-a", "kb_total": 100, "kb_used": 40, "kb_avail": 60, "avail_percent": 60,
             "store_stats": {"bytes_total": 5000, "bytes_sst": 1000, "bytes_log": 2000, "bytes_misc": 2000}},
            {"name": "mon-b", "kb_total": 200, "kb_used": 50, "kb_avail": 150, "avail_percent": 75,
             "store_stats": {"bytes_total": 6000}},
        ]}]},
        "timechecks": {"mons": [
            {"name": "mon-a", "skew": 0.5, "latency": 0.01},
            {"name": "mon-b", "skew": 0.0, "latency": 0.02},
        ]},
    },
    "quorum": [0, 1],
}

TIME_SYNC = {"time_skew_status": {
    "mon-a": {"skew": 0.25, "latency": 0.005, "health": "HEALTH_OK"},
}}

VERSIONS = {
    "mon": {"ceph version 16.2.5 (0883bdea7337b95e4b611c768c0279868462204a) pacific (stable)": 2},
    "osd": {"ceph version 16.2.5 (0883bdea7337b95e4b611c768c0279868462204a) pacific (stable)": 5,
            "something odd": 1},
}

FEATURES = {
    "mon": [{"features": "0x3f01cfb9fffdffff", "release": "luminous", "num": 2}],
    "client": [{"features": "0x2f018fb86aa42ada", "release": "luminous", "num": 4},
               {"features": "0x3f01cfb9fffdffff", "release": "luminous", "num": 1}],
    "note": "ignored",
}


def collect(**overrides):
    script = {"status": STATUS, "time-sync-status": TIME_SYNC, "versions": VERSIONS, "features": FEATURES}
    script.update(overrides)
    return MonitorCollector(FakeConnection(script), "test").collect(ScrapeContext())


class TestMonitorCollector:

    def test_capacity_in_bytes(self):
        samples = collect()
        assert value(samples, "monitor_capacity_bytes", monitor="mon-a") == 100 * 1024
        assert value(samples, "monitor_used_bytes", monitor="mon-b") == 50 * 1024
        assert value(samples, "monitor_avail_percent", monitor="mon-b") == 75
        assert value(samples, "monitor_store_sst_bytes", monitor="mon-a") == 1000
        assert value(samples, "monitor_store_log_bytes", monitor="mon-b") == 0

    def test_quorum(self):
        assert value(collect(), "monitor_quorum_count") == 2

    def test_time_sync_overrides_timechecks(self):
        samples = collect()
        assert value(samples, "monitor_clock_skew_seconds", monitor="mon-a") == 0.25
        assert value(samples, "monitor_latency_seconds", monitor="mon-a") == 0.005
        assert value(samples, "monitor_latency_seconds", monitor="mon-b") == 0.02

    def test_versions(self):
        samples = collect()
        assert value(samples, "versions", daemon="mon", version_tag="16.2.5", release_name="pacific",
                     sha1="0883bdea7337b95e4b611c768c0279868462204a") == 2
        assert value(samples, "versions", daemon="osd", version_tag="unknown") == 1

    def test_features(self):
        samples = collect()
        assert value(samples, "features", daemon="client", features="0x2f018fb86aa42ada") == 4
        assert len(find(samples, "features")) == 3

    def test_failing_part_does_not_hide_the_others(self):
        samples = collect(versions=TransportError("boom"), features=b"not json")
        assert find(samples, "versions") == []
        assert find(samples, "features") == []
        assert value(samples, "monitor_quorum_count") == 2
        assert value(samples, "monitor_clock_skew_seconds", monitor="mon-a") == 0.25

    def test_everything_failing(self):
        conn = FakeConnection()
        assert MonitorCollector(conn, "test").collect(ScrapeContext()) == []
        assert conn.prefixes() == ["status", "time-sync-status", "versions", "features"]
