# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
from conftest import FakeConnection, find, value
from ceph_exporter.collectors.base import ScrapeContext
from ceph_exporter.collectors.cluster_usage import ClusterUsageCollector
from ceph_exporter.collectors.pool_info import PoolInfoCollector
from ceph_exporter.collectors.pool_usage import PoolUsageCollector
from ceph_exporter.errors import TransportError

DF = {"stats": {"total_bytes": 10 * 1024 ** 4, "total_used_bytes": 4 * 1024 ** 4,
                "total_avail_bytes": 6 * 1024 ** 4}}

DF_DETAIL = {"pools": [
    {"name": "rbd", "id": 1, "stats": {
        "stored": 1000, "stored_raw": 3000, "bytes_used": 2900, "max_avail": 5000, "percent_used": 0.25,
        "objects": 12, "dirty": 3, "rd": 100, "rd_bytes": 4096, "wr": 50, "wr_bytes": 2048}},
    {"name": "legacy", "id": 2, "stats": {"stored": 10, "bytes_used": 30, "max_avail": 7}},
]}

POOLS = [
    {"pool_name": "rbd", "type": 1, "size": 3, "min_size": 2, "pg_num": 64, "pg_placement_num": 64,
     "quota_max_bytes": 0, "quota_max_objects": 0, "stripe_width": 0, "erasure_code_profile": ""},
    {"pool_name": "ec-data", "type": 3, "size": 6, "min_size": 5, "pg_num": 32, "pg_placement_num": 32,
     "quota_max_bytes": 1024, "quota_max_objects": 100, "stripe_width": 16384, "erasure_code_profile": "ec42"},
    {"pool_name": "ec-meta", "type": 3, "size": 6, "min_size": 5, "pg_num": 8, "pg_placement_num": 8,
     "erasure_code_profile": "ec42"},
    {"pool_name": "ec-odd", "type": 3, "size": 5, "min_size": 4, "pg_num": 8, "pg_placement_num": 8,
     "erasure_code_profile": "broken"},
    {"pool_name": "ec-gone", "type": 3, "size": 4, "min_size": 3, "pg_num": 8, "pg_placement_num": 8,
     "erasure_code_profile": "missing"},
]

PROFILES = {
    "ec42": {"k": "4", "m": "2", "plugin": "jerasure"},
    "broken": {"plugin": "jerasure"},
}


def profile_answer(command):
    name = command["name"]
    if name not in PROFILES:
        return TransportError(f"unknown profile {name}")
    return PROFILES[name]


class TestClusterUsage:

    def test_totals(self):
        samples = ClusterUsageCollector(FakeConnection(admin={"df": DF}), "test").collect(ScrapeContext())
        assert value(samples, "cluster_capacity_bytes") == 10 * 1024 ** 4
        assert value(samples, "cluster_used_bytes") == 4 * 1024 ** 4
        assert value(samples, "cluster_available_bytes") == 6 * 1024 ** 4

    def test_failure(self):
        assert ClusterUsageCollector(FakeConnection(), "test").collect(ScrapeContext()) == []


class TestPoolUsage:

    def test_pool_values(self):
        conn = FakeConnection(admin={"df": DF_DETAIL})
        samples = PoolUsageCollector(conn, "test").collect(ScrapeContext())
        assert value(samples, "pool_used_bytes", pool="rbd") == 1000
        assert value(samples, "pool_available_bytes", pool="rbd") == 5000
        assert value(samples, "pool_percent_used", pool="rbd") == 0.25
        assert value(samples, "pool_objects_total", pool="rbd") == 12
        assert value(samples, "pool_dirty_objects_total", pool="rbd") == 3
        assert value(samples, "pool_read_total", pool="rbd") == 100
        assert value(samples, "pool_read_bytes_total", pool="rbd") == 4096
        assert value(samples, "pool_write_total", pool="rbd") == 50
        assert value(samples, "pool_write_bytes_total", pool="rbd") == 2048
        assert conn.admin_calls == [{"prefix": "df", "format": "json", "detail": "detail"}]

    def test_raw_used_is_the_larger_field(self):
        samples = PoolUsageCollector(FakeConnection(admin={"df": DF_DETAIL}), "test").collect(ScrapeContext())
        assert value(samples, "pool_raw_used_bytes", pool="rbd") == 3000
        assert value(samples, "pool_raw_used_bytes", pool="legacy") == 30

    def test_missing_fields_are_zero(self):
        samples = PoolUsageCollector(FakeConnection(admin={"df": DF_DETAIL}), "test").collect(ScrapeContext())
        assert value(samples, "pool_dirty_objects_total", pool="legacy") == 0
        assert len(find(samples, "pool_used_bytes")) == 2


class TestPoolInfo:

    def collect(self):
        conn = FakeConnection(admin={"osd pool ls": POOLS, "osd erasure-code-profile get": profile_answer})
        return conn, PoolInfoCollector(conn, "test").collect(ScrapeContext())

    def test_replicated_pool(self):
        _, samples = self.collect()
        assert value(samples, "pool_size", pool="rbd", profile="replicated") == 3
        assert value(samples, "pool_min_size", pool="rbd") == 2
        assert value(samples, "pool_pg_num", pool="rbd") == 64
        assert value(samples, "pool_pgp_num", pool="rbd") == 64
        assert value(samples, "pool_expansion_factor", pool="rbd") == 3

    def test_erasure_coded_pool(self):
        _, samples = self.collect()
        assert value(samples, "pool_expansion_factor", pool="ec-data", profile="ec42") == 1.5
        assert value(samples, "pool_quota_max_bytes", pool="ec-data") == 1024
        assert value(samples, "pool_quota_max_objects", pool="ec-data") == 100
        assert value(samples, "pool_stripe_width", pool="ec-data") == 16384

    def test_profile_fetched_once_per_scrape(self):
        conn, _ = self.collect()
        gets = [c for c in conn.admin_calls if c["prefix"] == "osd erasure-code-profile get"]
        assert [c["name"] for c in gets] == ["ec42", "broken", "missing"]

    def test_profile_without_k_and_m_uses_size(self):
        _, samples = self.collect()
        assert value(samples, "pool_expansion_factor", pool="ec-odd", profile="broken") == 5

    def test_profile_command_failure(self):
        _, samples = self.collect()
        assert value(samples, "pool_expansion_factor", pool="ec-gone", profile="missing") == -1

    def test_pool_list_not_a_list(self):
        conn = FakeConnection(admin={"osd pool ls": {"pools": []}})
        assert PoolInfoCollector(conn, "test").collect(ScrapeContext()) == []
