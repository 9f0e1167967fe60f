# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Collectors package for the Ceph exporter.

Available collectors:
- base.py: Collector base class and the per-scrape ScrapeContext
- cluster_usage.py: Raw cluster capacity
- pool_usage.py, pool_info.py: Per-pool usage and configuration
- health.py: Health checks, PG states, cluster I/O rates
- monitors.py: Monitor capacity, clock skew, daemon versions and features
- osd.py: Per-OSD capacity, latency, state and scrub activity
- crashes.py: Crash report inventory
- rgw.py, mds.py, rbd_mirror.py: Optional gateway, CephFS and mirroring daemons
- background.py: Runs a slow collector on its own thread
"""
