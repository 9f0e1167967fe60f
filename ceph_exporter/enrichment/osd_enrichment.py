# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
OSD Topology Enrichment

Enriches per-OSD metrics with the CRUSH ancestry of the OSD:
- host: nearest ancestor bucket of type host
- rack: nearest ancestor bucket of type rack
- root: nearest ancestor bucket of type root
- device_class: taken from the OSD node itself

The ``osd tree`` payload is a flat node list where buckets point at their
children; parents are reconstructed from those pointers.
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from ceph_exporter.errors import ParseError

logger = logging.getLogger(__name__)

NO_PARENT = None


@dataclass
class TopologyNode:
    id: int
    name: str
    kind: str
    status: str = ""
    device_class: str = ""
    crush_weight: float = 0.0
    parent_id: Optional[int] = NO_PARENT
    children: tuple = ()

    @staticmethod
    def from_api_response(data: Dict) -> 'TopologyNode':
        try:
            return TopologyNode(
                id=int(data['id']),
                name=str(data.get('name', '')),
                kind=str(data.get('type', '')),
                status=str(data.get('status', '') or ''),
                device_class=str(data.get('device_class', '') or ''),
                crush_weight=float(data.get('crush_weight', 0) or 0),
                children=tuple(int(c) for c in data.get('children') or ()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"invalid osd tree node {data!r}: {e}", field="nodes") from e


@dataclass(frozen=True)
class OSDLabels:
    """Ancestry labels of one OSD; unknown ancestry is an empty string."""
    name: str = ""
    device_class: str = ""
    host: str = ""
    rack: str = ""
    root: str = ""


EMPTY_LABELS = OSDLabels()


def _find_ancestor(nodes: Dict[int, TopologyNode], start: TopologyNode, kind: str) -> Optional[TopologyNode]:
    visited = {start.id}
    parent_id = start.parent_id
    while parent_id is not NO_PARENT and parent_id not in visited:
        parent = nodes.get(parent_id)
        if parent is None:
            return None
        if parent.kind == kind:
            return parent
        visited.add(parent_id)
        parent_id = parent.parent_id
    return None


def resolve_topology(node_list: Iterable[TopologyNode]) -> Dict[int, OSDLabels]:
    """
    Build the OSD label table from a flat list of CRUSH tree nodes.

    Args:
        node_list: Every node of the tree, buckets and OSDs

    Returns:
        Mapping of OSD id to its labels; only nodes of kind ``osd`` are kept
    """
    nodes: Dict[int, TopologyNode] = {}
    for node in node_list:
        node.parent_id = NO_PARENT
        nodes[node.id] = node

    # a child listed under several buckets keeps the last one
    for node in nodes.values():
        for child_id in node.children:
            child = nodes.get(child_id)
            if child is not None:
                child.parent_id = node.id

    table: Dict[int, OSDLabels] = {}
    for node in nodes.values():
        if node.kind != "osd":
            continue
        host = _find_ancestor(nodes, node, "host")
        rack = _find_ancestor(nodes, node, "rack")
        root = _find_ancestor(nodes, node, "root")
        table[node.id] = OSDLabels(
            name=node.name,
            device_class=node.device_class,
            host=host.name if host else "",
            rack=rack.name if rack else "",
            root=root.name if root else "",
        )
    return table


def parse_osd_tree(payload: Union[bytes, str]) -> List[TopologyNode]:
    """Decode the ``nodes`` list of an ``osd tree`` payload."""
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ParseError(f"osd tree payload is not JSON: {e}", field="nodes") from e
    if not isinstance(data, dict) or not isinstance(data.get('nodes', []), list):
        raise ParseError("osd tree payload has no node list", field="nodes")
    return [TopologyNode.from_api_response(n) for n in data.get('nodes', [])]


def parse_osd_name(name: str) -> Optional[int]:
    """``osd.12`` -> 12, anything else -> None."""
    prefix, _, number = (name or "").partition(".")
    if prefix != "osd" or not number:
        return None
    try:
        return int(number)
    except ValueError:
        return None


class OSDTopologyResolver:
    """Holds the OSD label table between scrapes"""

    def __init__(self):
        self.osd_lookup: Dict[int, OSDLabels] = {}      # osd_id -> labels
        self.loaded = False
        self._lock = threading.Lock()

    def refresh(self, payload: Union[bytes, str]) -> None:
        """
        Rebuild the table from an ``osd tree`` payload.

        The previous table is replaced in one step. If the payload cannot be
        parsed the previous table stays in place and ParseError is raised.
        """
        table = resolve_topology(parse_osd_tree(payload))
        with self._lock:
            self.osd_lookup = table
            self.loaded = True
        logger.debug(f"Loaded OSD topology: {len(table)} OSDs")

    def labels_for_id(self, osd_id: int) -> OSDLabels:
        with self._lock:
            return self.osd_lookup.get(osd_id, EMPTY_LABELS)

    def labels_for_name(self, name: str) -> OSDLabels:
        osd_id = parse_osd_name(name)
        if osd_id is None:
            return EMPTY_LABELS
        return self.labels_for_id(osd_id)
