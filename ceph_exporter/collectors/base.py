# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Base class shared by all per-domain collectors.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List

from ceph_exporter.enrichment.osd_enrichment import OSDTopologyResolver
from ceph_exporter.errors import ParseError, TransportError
from ceph_exporter.metrics import MetricSample
from ceph_exporter.models import load_json_object
from ceph_exporter.version import OLDEST, Version

LOG = logging.getLogger(__name__)


@dataclass
class ScrapeContext:
    """State shared read-only by every collector during one scrape."""
    version: Version = OLDEST
    topology: OSDTopologyResolver = field(default_factory=OSDTopologyResolver)


class Collector(ABC):
    """
    One cluster subsystem: issues its commands, parses the payloads and
    returns a fresh list of samples on every scrape.
    """

    name = "collector"

    def __init__(self, conn, cluster: str):
        """
        Args:
            conn: CephConnection (or anything with the same two methods)
            cluster: Cluster label, used in log messages
        """
        self.conn = conn
        self.cluster = cluster

    def collect(self, ctx: ScrapeContext) -> List[MetricSample]:
        """
        Collect this domain.

        Transport and parse failures are logged and yield no samples; they
        never propagate to the caller.
        """
        try:
            return list(self._collect(ctx))
        except TransportError as e:
            LOG.error(f"[{self.cluster}] {self.name}: command failed: {e}")
        except ParseError as e:
            LOG.error(f"[{self.cluster}] {self.name}: unexpected payload (field {e.field}): {e}")
        return []

    def collect_parts(self, parts: Iterable[Callable[[], Iterable[MetricSample]]]) -> List[MetricSample]:
        """
        Run independent sub-requests of one domain.

        A failing part is logged and contributes no samples; the others still
        run.
        """
        samples: List[MetricSample] = []
        for part in parts:
            try:
                samples.extend(part())
            except (TransportError, ParseError) as e:
                LOG.error(f"[{self.cluster}] {self.name}: {part.__name__.lstrip('_')} failed: {e}")
        return samples

    @abstractmethod
    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        pass

    def admin_command(self, prefix: str, fmt: str = "json", **args) -> bytes:
        command: Dict[str, Any] = {"prefix": prefix, "format": fmt}
        command.update(args)
        buf, _ = self.conn.run_admin_command(command)
        return buf

    def admin_json(self, prefix: str, **args) -> Dict[str, Any]:
        return load_json_object(self.admin_command(prefix, **args), prefix)
