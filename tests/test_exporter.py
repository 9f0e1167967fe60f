# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
import logging
import threading
from unittest.mock import MagicMock

import pytest

from conftest import OSD_TREE, FakeConnection, value
from ceph_exporter.collectors.background import BackgroundCollector
from ceph_exporter.collectors.mds import MDSCollector
from ceph_exporter.collectors.rgw import RGWCollector
from ceph_exporter.errors import TransportError
from ceph_exporter.exporter import CephExporter
from ceph_exporter.metrics import MetricDef
from ceph_exporter.version import OLDEST, PACIFIC, Version

PACIFIC_BANNER = "ceph version 16.2.7 (dd0603118f56ab514f133c8d2e3adfc983942503) pacific (stable)"

VERSIONS = {
    "mon": {PACIFIC_BANNER: 3},
    "osd": {PACIFIC_BANNER: 3},
    "overall": {PACIFIC_BANNER: 6},
}

DF = {"stats": {"total_bytes": 100, "total_used_bytes": 40, "total_avail_bytes": 60}}

BASE_COLLECTORS = ["cluster_usage", "pool_usage", "pool_info", "health", "monitors", "osd", "crashes"]


def admin(**extra):
    answers = {"version": {"version": PACIFIC_BANNER}, "versions": VERSIONS, "osd tree": OSD_TREE, "df": DF}
    answers.update(extra)
    return answers


@pytest.fixture
def make_exporter():
    created = []

    def factory(answers=None, **kwargs):
        conn = FakeConnection(admin=admin() if answers is None else answers)
        exporter = CephExporter(conn, "test", "/etc/ceph/ceph.conf", "admin", **kwargs)
        created.append(exporter)
        return exporter

    yield factory
    for exporter in created:
        exporter.close(timeout=0.1)


class TestCollectorSet:

    def test_base_collectors(self, make_exporter):
        assert list(make_exporter().collectors) == BASE_COLLECTORS

    def test_foreground_modes(self, make_exporter):
        exporter = make_exporter(rgw_mode=1, mds_mode=1)
        assert isinstance(exporter.collectors["rgw"], RGWCollector)
        assert isinstance(exporter.collectors["mds"], MDSCollector)

    def test_background_mode_wraps(self, make_exporter):
        exporter = make_exporter(rgw_mode=2, background_interval=42)
        assert isinstance(exporter.collectors["rgw"], BackgroundCollector)
        assert isinstance(exporter.collectors["rgw"].inner, RGWCollector)
        assert exporter.collectors["rgw"].interval == 42
        assert "mds" not in exporter.collectors

    @pytest.mark.parametrize("mode", [3, -1, "1"])
    def test_invalid_mode(self, mode):
        with pytest.raises(ValueError):
            CephExporter(FakeConnection(), "test", "c", "u", mds_mode=mode)


class TestVersionDetection:

    def test_detected(self, make_exporter):
        exporter = make_exporter()
        assert exporter.detect_version() == Version(16, 2, 7)
        assert exporter.version.is_at_least(PACIFIC)

    @pytest.mark.parametrize("answer", [TransportError("down"), b"not json", {"version": "garbage"}])
    def test_fallback_to_oldest(self, make_exporter, answer):
        exporter = make_exporter(admin(version=answer))
        assert exporter.detect_version() == OLDEST


class TestRbdMirrorDiscovery:

    def test_added_and_removed(self, make_exporter):
        versions = dict(VERSIONS)
        versions["rbd-mirror"] = {PACIFIC_BANNER: 1}
        answers = admin(versions=versions)
        exporter = make_exporter(answers)

        exporter.detect_rbd_mirror()
        assert "rbd_mirror" in exporter.collectors

        exporter.conn.admin["versions"] = VERSIONS
        exporter.detect_rbd_mirror()
        assert "rbd_mirror" not in exporter.collectors

    def test_empty_entry_is_not_running(self, make_exporter):
        versions = dict(VERSIONS)
        versions["rbd-mirror"] = {}
        exporter = make_exporter(admin(versions=versions))
        exporter.detect_rbd_mirror()
        assert "rbd_mirror" not in exporter.collectors

    def test_failure_keeps_current_set(self, make_exporter, caplog):
        versions = dict(VERSIONS)
        versions["rbd-mirror"] = {PACIFIC_BANNER: 2}
        answers = admin(versions=versions)
        exporter = make_exporter(answers)
        exporter.detect_rbd_mirror()

        exporter.conn.admin["versions"] = TransportError("mgr restarting")
        with caplog.at_level(logging.WARNING, logger="ceph_exporter.exporter"):
            exporter.detect_rbd_mirror()
        assert "daemon discovery failed" in caplog.text
        assert "mgr restarting" in caplog.text
        assert "rbd_mirror" in exporter.collectors


class TestTopology:

    def test_previous_topology_kept(self, make_exporter, caplog):
        exporter = make_exporter()
        exporter.refresh_topology()
        assert exporter.topology.labels_for_id(1).host == "node-a"

        exporter.conn.admin["osd tree"] = TransportError("timeout")
        with caplog.at_level(logging.WARNING, logger="ceph_exporter.exporter"):
            exporter.refresh_topology()
        assert "using previous topology" in caplog.text
        assert exporter.topology.loaded
        assert exporter.topology.labels_for_id(1).host == "node-a"

    def test_never_loaded(self, make_exporter):
        exporter = make_exporter(admin(**{"osd tree": b"{"}))
        exporter.refresh_topology()
        assert not exporter.topology.loaded


class TestCollectAll:

    def test_scrape_order(self, make_exporter):
        exporter = make_exporter()
        exporter.collect_all()
        assert exporter.conn.prefixes()[:3] == ["version", "versions", "osd tree"]

    def test_failing_collectors_are_isolated(self, make_exporter):
        exporter = make_exporter()
        crashing = MagicMock()
        crashing.collect.side_effect = RuntimeError("boom")
        exporter.collectors["crashes"] = crashing

        samples = exporter.collect_all()
        # every other collector fails on a missing command; df still answers
        assert value(samples, "cluster_capacity_bytes") == 100
        assert value(samples, "cluster_available_bytes") == 60

    def test_context_passed_to_collectors(self, make_exporter):
        exporter = make_exporter()
        recorder = MagicMock()
        recorder.collect.return_value = [MetricDef("recorder", "Recorder").sample(1)]
        exporter.collectors["recorder"] = recorder

        samples = exporter.collect_all()
        ctx = recorder.collect.call_args[0][0]
        assert ctx.version.is_at_least(PACIFIC)
        assert ctx.topology is exporter.topology
        assert value(samples, "recorder") == 1

    def test_cycles_are_serialized(self, make_exporter):
        log = []
        entered, release = threading.Event(), threading.Event()

        def version_answer(command):
            log.append("version")
            if not entered.is_set():
                entered.set()
                release.wait(5)
            return {"version": PACIFIC_BANNER}

        exporter = make_exporter(admin(version=version_answer))
        recorder = MagicMock()
        recorder.collect.side_effect = lambda ctx: log.append("collect") or []
        exporter.collectors = {"recorder": recorder}

        first = threading.Thread(target=exporter.collect_all)
        second = threading.Thread(target=exporter.collect_all)
        first.start()
        assert entered.wait(5)
        second.start()
        second.join(timeout=0.2)
        # the second cycle waits for the first one to finish
        assert second.is_alive()
        assert log == ["version"]

        release.set()
        first.join(5)
        second.join(5)
        assert log == ["version", "collect", "version", "collect"]


class TestClose:

    def test_stops_background_collectors(self, make_exporter):
        exporter = make_exporter(rgw_mode=2)
        background = exporter.collectors["rgw"]
        background.stop = MagicMock()
        exporter.close(timeout=2)
        background.stop.assert_called_once_with(2)
