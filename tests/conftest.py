# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Shared fixtures: a scripted stand-in for CephConnection and small helpers to
look samples up by family name and labels.
"""

import json

import pytest

from ceph_exporter.collectors.base import ScrapeContext
from ceph_exporter.enrichment.osd_enrichment import OSDTopologyResolver
from ceph_exporter.errors import TransportError
from ceph_exporter.version import OCTOPUS, PACIFIC


def _encode(answer):
    if isinstance(answer, bytes):
        return answer
    if isinstance(answer, str):
        return answer.encode()
    return json.dumps(answer).encode()


class FakeConnection:
    """
    Answers commands from a script instead of a cluster.

    Admin answers are keyed by command prefix, or by (prefix, format) when
    the plain and JSON outputs differ. CLI answers are keyed by a fragment of
    the joined argv; the longest matching fragment wins. An answer may be
    bytes, str, a JSON-serialisable object, an exception to raise, or a
    callable receiving the command and returning one of those.
    """

    def __init__(self, admin=None, background=None):
        self.admin = dict(admin or {})
        self.background = dict(background or {})
        self.admin_calls = []
        self.background_calls = []

    def run_admin_command(self, command):
        self.admin_calls.append(command)
        prefix = command["prefix"]
        key = (prefix, command.get("format"))
        if key in self.admin:
            answer = self.admin[key]
        elif prefix in self.admin:
            answer = self.admin[prefix]
        else:
            raise TransportError(f"no scripted answer for {prefix!r}", command=prefix)
        return self._resolve(answer, command), ""

    def run_background_command(self, argv):
        self.background_calls.append(list(argv))
        joined = " ".join(argv)
        matches = [fragment for fragment in self.background if fragment in joined]
        if not matches:
            raise TransportError(f"no scripted answer for {joined!r}", command=argv[0])
        return self._resolve(self.background[max(matches, key=len)], argv)

    @staticmethod
    def _resolve(answer, request):
        if callable(answer) and not isinstance(answer, type):
            answer = answer(request)
        if isinstance(answer, BaseException):
            raise answer
        return _encode(answer)

    def prefixes(self):
        return [command["prefix"] for command in self.admin_calls]


def find(_samples, _family, **labels):
    """Samples of ``_family`` (with or without the ceph_ prefix) whose labels include ``labels``."""
    full = _family if _family.startswith("ceph_") else f"ceph_{_family}"
    return [
        s for s in _samples
        if s.name == full and all(s.labels.get(k) == str(v) for k, v in labels.items())
    ]


def value(_samples, _family, **labels):
    """Value of the single sample of ``_family`` matching ``labels``."""
    matches = find(_samples, _family, **labels)
    assert len(matches) == 1, f"expected one {_family} {labels}, got {matches}"
    return matches[0].value


OSD_TREE = {
    "nodes": [
        {"id": -1, "name": "default", "type": "root", "children": [-4]},
        {"id": -4, "name": "rack1", "type": "rack", "children": [-2, -3]},
        {"id": -2, "name": "node-a", "type": "host", "children": [0, 1]},
        {"id": -3, "name": "node-b", "type": "host", "children": [2]},
        {"id": 0, "name": "osd.0", "type": "osd", "device_class": "hdd", "status": "up", "crush_weight": 1.0},
        {"id": 1, "name": "osd.1", "type": "osd", "device_class": "ssd", "status": "up", "crush_weight": 0.5},
        {"id": 2, "name": "osd.2", "type": "osd", "device_class": "hdd", "status": "down", "crush_weight": 1.0},
    ],
    "stray": [],
}


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def topology():
    resolver = OSDTopologyResolver()
    resolver.refresh(json.dumps(OSD_TREE))
    return resolver


@pytest.fixture
def octopus_ctx(topology):
    return ScrapeContext(version=OCTOPUS, topology=topology)


@pytest.fixture
def pacific_ctx(topology):
    return ScrapeContext(version=PACIFIC, topology=topology)
