# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from ceph_exporter.connection import CephConnection, get_session, normalize_endpoint
from ceph_exporter.errors import TransportError


def response(payload=None, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
    return resp


class TestNormalizeEndpoint:

    @pytest.mark.parametrize("raw,expected", [
        ("mgr1", "https://mgr1:8003"),
        ("mgr1:9000", "https://mgr1:9000"),
        ("http://mgr1", "http://mgr1:8003"),
        ("https://mgr1:8003/", "https://mgr1:8003"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_endpoint(raw) == expected


class TestGetSession:

    def test_first_answering_endpoint(self):
        with patch("ceph_exporter.connection.requests.Session") as session_cls:
            session = session_cls.return_value
            session.get.side_effect = [requests.ConnectionError("refused"), response(status=200)]
            result, endpoint = get_session("admin", "key", ["mgr1", "mgr2"], tls_validation="none")
        assert result is session
        assert endpoint in ("https://mgr1:8003", "https://mgr2:8003")
        assert session.get.call_count == 2

    def test_authentication_failure_stops(self):
        with patch("ceph_exporter.connection.requests.Session") as session_cls:
            session_cls.return_value.get.return_value = response(status=401)
            assert get_session("admin", "bad", ["mgr1", "mgr2"]) == (None, None)
            assert session_cls.return_value.get.call_count == 1

    def test_no_endpoints(self):
        assert get_session("admin", "key", []) == (None, None)


class TestRunAdminCommand:

    def conn(self, resp):
        session = MagicMock()
        session.post.return_value = resp
        return CephConnection(session, "https://mgr1:8003", timeout=5), session

    def test_success(self):
        conn, session = self.conn(response({"finished": [{"outb": '{"a": 1}', "outs": ""}]}))
        buf, status = conn.run_admin_command({"prefix": "df", "format": "json"})
        assert buf == b'{"a": 1}'
        assert status == ""
        session.post.assert_called_once_with("https://mgr1:8003/request", params={"wait": 1},
                                             json={"prefix": "df", "format": "json"}, timeout=5)

    def test_structured_output_is_reencoded(self):
        conn, _ = self.conn(response({"finished": [{"outb": {"a": 1}}]}))
        assert conn.run_admin_command({"prefix": "df"})[0] == b'{"a": 1}'

    def test_rejected(self):
        conn, _ = self.conn(response({"has_failed": True, "failed": [{"outs": "unknown command"}]}))
        with pytest.raises(TransportError, match="unknown command"):
            conn.run_admin_command({"prefix": "bogus"})

    def test_not_finished(self):
        conn, _ = self.conn(response({"finished": [], "state": "pending"}))
        with pytest.raises(TransportError):
            conn.run_admin_command({"prefix": "df"})

    def test_http_error(self):
        conn, _ = self.conn(response(status=500))
        with pytest.raises(TransportError):
            conn.run_admin_command({"prefix": "df"})

    def test_timeout(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("slow")
        with pytest.raises(TransportError, match="timed out after 60") as exc:
            CephConnection(session, "https://mgr1:8003").run_admin_command({"prefix": "status"})
        assert exc.value.command == "status"

    def test_non_json(self):
        resp = response()
        resp.json.side_effect = ValueError("no json")
        conn, _ = self.conn(resp)
        with pytest.raises(TransportError):
            conn.run_admin_command({"prefix": "df"})

    def test_no_session(self):
        with pytest.raises(TransportError):
            CephConnection(None, None).run_admin_command({"prefix": "df"})


class TestRunBackgroundCommand:

    ARGV = ["/usr/bin/radosgw-admin", "gc", "list"]

    def test_stdout(self):
        with patch("ceph_exporter.connection.subprocess.run") as run:
            run.return_value.stdout = b"[]"
            assert CephConnection(None, None, background_timeout=7).run_background_command(self.ARGV) == b"[]"
        run.assert_called_once_with(self.ARGV, capture_output=True, timeout=7, check=True)

    @pytest.mark.parametrize("error", [
        subprocess.TimeoutExpired(ARGV, 7),
        subprocess.CalledProcessError(1, ARGV, stderr=b"auth failed"),
        FileNotFoundError("radosgw-admin"),
    ])
    def test_failures(self, error):
        with patch("ceph_exporter.connection.subprocess.run", side_effect=error):
            with pytest.raises(TransportError):
                CephConnection(None, None).run_background_command(self.ARGV)
