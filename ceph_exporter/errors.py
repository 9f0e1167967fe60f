# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Exception types shared by the transport, parsers and collectors.

A collector that hits a TransportError or ParseError skips its domain for the
current scrape; it never aborts the scrape as a whole.
"""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class TransportError(ExporterError):
    """An administrative request or CLI subprocess failed or timed out."""

    def __init__(self, message: str, command: Optional[str] = None):
        super().__init__(message)
        self.command = command


class ParseError(ExporterError):
    """A payload could not be decoded or a field had an unexpected type."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidVersion(ExporterError, ValueError):
    """The cluster version string does not look like X.Y.Z."""


class ConfigError(ExporterError):
    """The exporter configuration is invalid."""
