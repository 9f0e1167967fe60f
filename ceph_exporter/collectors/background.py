# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Runs a slow collector on its own thread.

Scrapes never wait on the wrapped collector: a worker thread collects every
``interval`` seconds and publishes the batch into a bounded queue, and each
scrape drains whatever has arrived and returns the most recent batch.
"""

import logging
import queue
import threading
from typing import Iterable, List, Optional

from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.metrics import MetricSample

LOG = logging.getLogger(__name__)

DEFAULT_INTERVAL = 300.0
DEFAULT_QUEUE_SIZE = 4


class BackgroundCollector(Collector):
    """Wraps a collector and serves its last completed batch."""

    def __init__(self, inner: Collector, interval: float = DEFAULT_INTERVAL, queue_size: int = DEFAULT_QUEUE_SIZE):
        """
        Args:
            inner: Collector to run in the background
            interval: Seconds between two background runs
            queue_size: Completed batches kept until the next scrape
        """
        super().__init__(inner.conn, inner.cluster)
        self.inner = inner
        self.name = inner.name
        self.interval = interval
        self.results: "queue.Queue[List[MetricSample]]" = queue.Queue(maxsize=queue_size)
        self.latest: List[MetricSample] = []
        self.ctx = ScrapeContext()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def start(self) -> None:
        with self._start_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._run, name=f"background-{self.name}", daemon=True)
            self._thread.start()
        LOG.info(f"[{self.cluster}] {self.name}: background collection every {self.interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                LOG.exception(f"[{self.cluster}] {self.name}: background collection failed: {e}")
            self._stop.wait(self.interval)

    def run_once(self) -> None:
        """Collect once and publish the batch; a full queue drops it."""
        samples = self.inner.collect(self.ctx)
        try:
            self.results.put_nowait(samples)
        except queue.Full:
            LOG.warning(f"[{self.cluster}] {self.name}: result queue full, dropping the newest batch")

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        self.ctx = ctx
        self.start()
        while True:
            try:
                self.latest = self.results.get_nowait()
            except queue.Empty:
                break
        return list(self.latest)
