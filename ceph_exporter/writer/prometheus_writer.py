# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Prometheus exporter writer for the Ceph exporter.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from prometheus_client import CollectorRegistry, generate_latest, start_http_server
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from ceph_exporter.metrics import COUNTER, MetricDef, MetricSample
from ceph_exporter.writer.base import Writer

# Initialize logger
LOG = logging.getLogger(__name__)

CLUSTER_LABEL = "cluster"


def build_families(batches: Iterable[Tuple[str, List[MetricSample]]]) -> list:
    """
    Turn per-cluster sample batches into Prometheus metric families.

    Args:
        batches: (cluster label, samples) pairs

    Returns:
        One family per metric name, labelled ``cluster`` first. Samples with
        the same family and label values collapse to the last one seen.
    """
    grouped: Dict[str, Tuple[MetricDef, Dict[Tuple[str, ...], float]]] = {}
    for cluster, samples in batches:
        for sample in samples:
            metric, values = grouped.setdefault(sample.name, (sample.metric, {}))
            values[(cluster, *sample.label_values)] = sample.value

    families = []
    for name, (metric, values) in grouped.items():
        labels = [CLUSTER_LABEL, *metric.label_names]
        if metric.kind == COUNTER:
            family = CounterMetricFamily(name, metric.documentation, labels=labels)
        else:
            family = GaugeMetricFamily(name, metric.documentation, labels=labels)
        for label_values, value in values.items():
            family.add_metric(list(label_values), value)
        families.append(family)
    return families


class ExporterBridge:
    """Custom collector that scrapes every registered exporter on demand."""

    def __init__(self):
        self.exporters = []
        self._lock = threading.Lock()

    def add(self, exporter) -> None:
        with self._lock:
            self.exporters.append(exporter)

    def describe(self):
        # Nothing is declared up front; the registry must not scrape at registration
        return []

    def collect(self):
        with self._lock:
            exporters = list(self.exporters)
        batches = []
        for exporter in exporters:
            try:
                batches.append((exporter.cluster, exporter.collect_all()))
            except Exception as e:
                LOG.exception(f"[{exporter.cluster}] scrape failed: {e}")
        yield from build_families(batches)


class PrometheusWriter(Writer):
    """
    Writer that serves the metrics of every registered cluster for scraping.
    """

    def __init__(self, port: int = 9128, addr: str = "0.0.0.0",
                 certfile: Optional[str] = None, keyfile: Optional[str] = None):
        """
        Initialize the Prometheus writer.

        Args:
            port: Port to serve Prometheus metrics on (default: 9128)
            addr: Address to bind
            certfile: TLS certificate; with keyfile, serves HTTPS
            keyfile: TLS private key
        """
        self.port = port
        self.addr = addr
        self.certfile = certfile
        self.keyfile = keyfile
        self.server = None
        self.server_thread = None
        self.server_started = False
        self.server_lock = threading.Lock()

        # Custom registry keeps process and platform collectors out of the output
        self.prometheus_registry = CollectorRegistry()
        self.bridge = ExporterBridge()
        self.prometheus_registry.register(self.bridge)

        LOG.info(f"PrometheusWriter initialized, will serve metrics on {addr}:{port}")

    def register(self, exporter) -> None:
        self.bridge.add(exporter)
        LOG.info(f"Registered cluster {exporter.cluster}")

    def start(self) -> None:
        """Start the Prometheus HTTP server if not already started."""
        with self.server_lock:
            if self.server_started:
                return
            try:
                self.server, self.server_thread = start_http_server(
                    self.port, addr=self.addr, registry=self.prometheus_registry,
                    certfile=self.certfile, keyfile=self.keyfile)
                self.server_started = True
                scheme = "https" if self.certfile else "http"
                LOG.info(f"Prometheus metrics server started on {scheme}://{self.addr}:{self.port}/metrics")
            except Exception as e:
                LOG.error(f"Failed to start Prometheus server on port {self.port}: {e}")
                raise

    def render(self) -> bytes:
        """Scrape all clusters now and return the exposition text."""
        return generate_latest(self.prometheus_registry)

    def close(self) -> None:
        with self.server_lock:
            if self.server is not None:
                self.server.shutdown()
                self.server.server_close()
                self.server = None
            self.server_started = False
