# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Extractors for counters embedded in human readable Ceph messages.

Every function here is pure: it takes one line or message and returns the
extracted value, or None when the message does not carry that signal. A miss
is never an error.
"""

import re
from typing import List, Optional, Tuple

from ceph_exporter.errors import ParseError

STUCK_PG_KINDS = ("degraded", "unclean", "undersized", "stale")

_STUCK_PGS = {kind: re.compile(rf'(\d+) pgs stuck {kind}') for kind in STUCK_PG_KINDS}
_SLOW_OPS = re.compile(r'(\d+) slow ops, oldest one blocked for (\d+) sec')
_MONS_DOWN = re.compile(r'(\d+)/(\d+) mons down, quorum \w+')
_RECENT_CRASH = re.compile(r'(\d+) daemons have recently crashed')
_TOO_MANY_REPAIRS = re.compile(r'Too many repaired reads on (\d+) OSDs')
_OSDMAP_FLAGS = re.compile(r'([^ ]+) flag\(s\) set')

_RECOVERY_RATE = re.compile(r'(\d+) (\w{2})/s')
_KEYS_RATE = re.compile(r'(\d+) keys/s')
_OBJECTS_RATE = re.compile(r'(\d+) objects/s')
_LEGACY_TOTAL_OPS = re.compile(r'(\d+) op/s[^ \w]*$')

_CRASH_LINE = re.compile(r'.*_[0-9a-f-]{36}\s+(\S+)\s*(\*)?')
_VERSION_BANNER = re.compile(
    r'ceph version (?P<version_tag>\d+\.\d+\.\d+.*) \((?P<sha1>[A-Za-z0-9]{40})\) (?P<release_tag>\w+)')

UNIT_MULTIPLIERS = {
    "kb": 1e3,
    "mb": 1e6,
    "gb": 1e9,
}


def to_bytes(value: int, unit: str) -> float:
    """
    Normalise a ``<value> <unit>/s`` rate to bytes per second.

    Raises:
        ParseError: If the unit is not kb, mb or gb
    """
    multiplier = UNIT_MULTIPLIERS.get(unit.lower())
    if multiplier is None:
        raise ParseError(f"can't parse units {unit!r}", field=unit)
    return value * multiplier


def stuck_pgs(text: str, kind: str) -> Optional[int]:
    """``N pgs stuck <kind>`` for kind in degraded, unclean, undersized, stale."""
    match = _STUCK_PGS[kind].search(text)
    return int(match.group(1)) if match else None


def slow_ops(text: str) -> Optional[Tuple[int, int]]:
    """``N slow ops, oldest one blocked for M sec`` -> (N, M)."""
    match = _SLOW_OPS.search(text)
    return (int(match.group(1)), int(match.group(2))) if match else None


def mons_down(text: str) -> Optional[Tuple[int, int]]:
    """``N/M mons down, quorum a,b`` -> (N, M)."""
    match = _MONS_DOWN.search(text)
    return (int(match.group(1)), int(match.group(2))) if match else None


def recent_crashes(text: str) -> Optional[int]:
    match = _RECENT_CRASH.search(text)
    return int(match.group(1)) if match else None


def too_many_repairs(text: str) -> Optional[int]:
    match = _TOO_MANY_REPAIRS.search(text)
    return int(match.group(1)) if match else None


def osdmap_flags(text: str) -> Optional[List[str]]:
    """
    Flags from ``noout,noscrub flag(s) set``.

    Any token is returned, known or not, so new flags surface without code
    changes.
    """
    match = _OSDMAP_FLAGS.search(text)
    if not match:
        return None
    return [flag for flag in match.group(1).split(",") if flag]


def rate_bytes(text: str, suffix: str) -> Optional[float]:
    """``N kB/s <suffix>`` in bytes per second, e.g. suffix ``rd`` or ``flush``."""
    match = re.search(rf'(\d+) ([kKmMgG][bB])/s {re.escape(suffix)}', text)
    if not match:
        return None
    return to_bytes(int(match.group(1)), match.group(2))


def recovery_rate(text: str) -> Optional[float]:
    """First ``N xx/s`` rate of a recovery line, in bytes per second."""
    match = _RECOVERY_RATE.search(text)
    if not match:
        return None
    return to_bytes(int(match.group(1)), match.group(2))


def ops_rate(text: str, suffix: str) -> Optional[int]:
    """``N op/s <suffix>``, e.g. suffix ``rd``, ``wr`` or ``promote``."""
    match = re.search(rf'(\d+) op/s {re.escape(suffix)}', text)
    return int(match.group(1)) if match else None


def legacy_total_ops(text: str) -> Optional[int]:
    """Pre-Jewel total ``N op/s`` at the end of a client io line."""
    match = _LEGACY_TOTAL_OPS.search(text)
    return int(match.group(1)) if match else None


def keys_rate(text: str) -> Optional[int]:
    match = _KEYS_RATE.search(text)
    return int(match.group(1)) if match else None


def objects_rate(text: str) -> Optional[int]:
    match = _OBJECTS_RATE.search(text)
    return int(match.group(1)) if match else None


def crash_line(line: str) -> Optional[Tuple[str, bool]]:
    """
    One line of plain ``crash ls`` output -> (entity, is_new).

    The header and blank lines return None.
    """
    match = _CRASH_LINE.match(line)
    if not match:
        return None
    return match.group(1), match.group(2) == "*"


def parse_version_banner(text: str) -> Optional[Tuple[str, str, str]]:
    """``ceph version X (sha1) release ...`` -> (version_tag, sha1, release)."""
    match = _VERSION_BANNER.search(text)
    if not match:
        return None
    return match.group('version_tag'), match.group('sha1'), match.group('release_tag')


def parse_mds_op_description(desc: str) -> Tuple[str, str, str]:
    """
    Parse the description of a blocked MDS client request.

    Example: ``client_request(client.4567:89 getattr #0x10000000001 2024-01-01 ...)``

    Returns:
        (fs_op_type, inode, client_id)

    Raises:
        ParseError: If the description does not follow the client_request layout
    """
    parts = desc.split()
    if len(parts) < 4:
        raise ParseError(f"invalid fs description: {desc!r}", field="description")

    fs_op_type, inode = parts[1], parts[2]
    inode = inode.lstrip("#")
    if inode.startswith("0x"):
        inode = inode[2:]
    inode = inode.split("/")[0]
    try:
        int(inode, 16)
    except ValueError as e:
        raise ParseError(f"invalid inode, expected hex instead got {inode!r}", field="inode") from e

    client_parts = parts[0].split("(")
    if len(client_parts) != 2:
        raise ParseError(f"invalid client request format: {parts[0]!r}", field="client")
    client_parts = client_parts[1].split(":")
    if len(client_parts) != 2:
        raise ParseError(f"invalid client id format: {parts[0]!r}", field="client")
    client_parts = client_parts[0].split(".")
    if len(client_parts) != 2:
        raise ParseError(f"invalid client id string: {client_parts[0]!r}", field="client")

    return fs_op_type, inode, client_parts[1]
