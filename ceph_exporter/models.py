# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Payload models for Ceph command output.

Blocks whose layout changed between releases have one model per layout and a
selector that picks the layout from the cluster Version alone. The payload is
never probed to guess its layout: a missing field is reported as missing, not
taken as a hint that another layout applies.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ceph_exporter.errors import ParseError
from ceph_exporter.version import OCTOPUS, Version


def load_json(payload: Union[bytes, str], what: str) -> Any:
    """Decode a command payload, raising ParseError naming the command."""
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ParseError(f"{what} payload is not JSON: {e}", field=what) from e


def load_json_object(payload: Union[bytes, str], what: str) -> Dict[str, Any]:
    data = load_json(payload, what)
    if not isinstance(data, dict):
        raise ParseError(f"{what} payload is not an object", field=what)
    return data


def load_json_list(payload: Union[bytes, str], what: str) -> List[Dict[str, Any]]:
    """Decode a payload holding a list of objects; non-object items are skipped."""
    data = load_json(payload, what)
    if not isinstance(data, list):
        raise ParseError(f"{what} payload is not a list", field=what)
    return [item for item in data if isinstance(item, dict)]


def number(data: Dict[str, Any], key: str, default: Optional[float] = 0.0) -> float:
    """
    Read a numeric field.

    Args:
        data: Object holding the field
        key: Field name
        default: Value for an absent field; None makes the field mandatory

    Raises:
        ParseError: If the field is not numeric, or absent and mandatory
    """
    value = data.get(key) if isinstance(data, dict) else None
    if value is None:
        if default is None:
            raise ParseError(f"missing field {key!r}", field=key)
        return default
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ParseError(f"field {key!r} is not numeric: {value!r}", field=key) from e


def object_list(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = data.get(key) if isinstance(data, dict) else None
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"field {key!r} is not a list", field=key)
    return [item for item in value if isinstance(item, dict)]


class PayloadShape(Enum):
    """Layout generations of the ``status`` payload."""
    NAUTILUS = "nautilus"
    OCTOPUS = "octopus"


def status_shape(version: Version) -> PayloadShape:
    if version.is_at_least(OCTOPUS):
        return PayloadShape.OCTOPUS
    return PayloadShape.NAUTILUS


@dataclass
class OSDMapSummary:
    num_osds: float = 0.0
    num_up_osds: float = 0.0
    num_in_osds: float = 0.0
    num_remapped_pgs: float = 0.0

    @staticmethod
    def from_api_response(data: Dict[str, Any]) -> 'OSDMapSummary':
        return OSDMapSummary(
            num_osds=number(data, 'num_osds', None),
            num_up_osds=number(data, 'num_up_osds', None),
            num_in_osds=number(data, 'num_in_osds', None),
            num_remapped_pgs=number(data, 'num_remapped_pgs'),
        )

    @property
    def num_down_osds(self) -> float:
        return self.num_osds - self.num_up_osds


def parse_osdmap(status: Dict[str, Any], version: Version) -> OSDMapSummary:
    """
    Read the osdmap block of a ``status`` payload.

    Octopus and later report the counters directly under ``osdmap``; older
    releases nest them one level deeper under ``osdmap.osdmap``.
    """
    block = status.get('osdmap')
    if block is None:
        return OSDMapSummary()
    if not isinstance(block, dict):
        raise ParseError("osdmap is not an object", field="osdmap")

    if status_shape(version) is PayloadShape.NAUTILUS:
        inner = block.get('osdmap')
        if not isinstance(inner, dict):
            raise ParseError("osdmap.osdmap missing for pre-Octopus payload", field="osdmap.osdmap")
        block = inner
    return OSDMapSummary.from_api_response(block)


@dataclass
class MgrMapSummary:
    active: int = 0
    standbys: int = 0

    @property
    def total(self) -> int:
        return self.active + self.standbys


def parse_mgrmap(status: Dict[str, Any], version: Version) -> MgrMapSummary:
    """
    Read the mgrmap block of a ``status`` payload.

    Octopus and later report ``available`` and ``num_standbys``; older releases
    report ``active_name`` and a ``standbys`` list.
    """
    block = status.get('mgrmap') or {}
    if not isinstance(block, dict):
        raise ParseError("mgrmap is not an object", field="mgrmap")

    if status_shape(version) is PayloadShape.OCTOPUS:
        return MgrMapSummary(
            active=1 if block.get('available') else 0,
            standbys=int(number(block, 'num_standbys')),
        )
    standbys = block.get('standbys') or []
    if not isinstance(standbys, list):
        raise ParseError("mgrmap.standbys is not a list", field="mgrmap.standbys")
    return MgrMapSummary(
        active=1 if block.get('active_name') else 0,
        standbys=len(standbys),
    )


@dataclass
class PGBrief:
    """One entry of ``pg dump pgs_brief``."""
    pgid: str
    state: str
    acting: List[int]
    acting_primary: int = -1

    @staticmethod
    def from_api_response(data: Dict[str, Any]) -> 'PGBrief':
        try:
            return PGBrief(
                pgid=str(data['pgid']),
                state=str(data.get('state', '')),
                acting=[int(osd) for osd in data.get('acting') or []],
                acting_primary=int(data.get('acting_primary', -1)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"invalid pg_stats entry {data!r}", field="pg_stats") from e


def parse_pg_dump_brief(payload: Union[bytes, str]) -> List[PGBrief]:
    """Decode ``pg dump dumpcontents=[pgs_brief]``."""
    data = load_json_object(payload, "pg dump")
    return [PGBrief.from_api_response(entry) for entry in object_list(data, 'pg_stats')]
