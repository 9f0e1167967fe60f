# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
