# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Base writer interface for the Ceph exporter.
"""

from abc import ABC, abstractmethod


class Writer(ABC):
    """
    Base class for all writers.

    A writer publishes the samples of one or more cluster exporters. Scraping
    is pull based: the writer asks each registered exporter for a fresh
    sample set whenever its consumer asks for data.
    """

    @abstractmethod
    def register(self, exporter) -> None:
        """
        Add a cluster exporter to the set served by this writer.

        Args:
            exporter: Object with a ``cluster`` attribute and a
                ``collect_all()`` method returning MetricSamples
        """
        pass

    @abstractmethod
    def start(self) -> None:
        """Start serving."""
        pass

    def close(self) -> None:
        """Stop serving. Writers without resources to release keep the default."""
        pass
