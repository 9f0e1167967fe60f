# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Prometheus exporter for Ceph clusters.
"""

__version__ = "1.0.0"
