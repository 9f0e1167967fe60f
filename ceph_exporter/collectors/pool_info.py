# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Per-pool configuration from ``ceph osd pool ls detail``.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ceph_exporter.collectors.base import Collector, ScrapeContext
from ceph_exporter.errors import ParseError, TransportError
from ceph_exporter.metrics import MetricDef, MetricSample
from ceph_exporter.models import load_json_list, number

LOG = logging.getLogger(__name__)

POOL_PROFILE = ("pool", "profile")

# pool type 1 is replicated, 3 is erasure coded
POOL_TYPE_REPLICATED = 1

PG_NUM = MetricDef("pool_pg_num", "The total count of PGs alotted to a pool", POOL_PROFILE)
PGP_NUM = MetricDef("pool_pgp_num", "The total count of PGs alotted to a pool and used for placements",
                    POOL_PROFILE)
MIN_SIZE = MetricDef("pool_min_size",
                     "Minimum number of copies or chunks of an object that need to be present for active I/O",
                     POOL_PROFILE)
SIZE = MetricDef("pool_size",
                 "Total copies or chunks of an object that need to be present for a healthy cluster",
                 POOL_PROFILE)
QUOTA_MAX_BYTES = MetricDef("pool_quota_max_bytes", "Maximum amount of bytes of data allowed in a pool",
                            POOL_PROFILE)
QUOTA_MAX_OBJECTS = MetricDef("pool_quota_max_objects", "Maximum amount of RADOS objects allowed in a pool",
                              POOL_PROFILE)
STRIPE_WIDTH = MetricDef("pool_stripe_width", "Stripe width of a RADOS object in a pool", POOL_PROFILE)
EXPANSION_FACTOR = MetricDef("pool_expansion_factor", "Data expansion multiplier for a pool", POOL_PROFILE)


class PoolInfoCollector(Collector):
    name = "pool_info"

    def _collect(self, ctx: ScrapeContext) -> Iterable[MetricSample]:
        pools = load_json_list(self.admin_command("osd pool ls", detail="detail"), "osd pool ls")

        profiles: Dict[str, Optional[float]] = {}
        samples: List[MetricSample] = []
        for pool in pools:
            name = pool.get("pool_name", "")
            size = number(pool, "size")
            if int(number(pool, "type", POOL_TYPE_REPLICATED)) == POOL_TYPE_REPLICATED:
                profile = "replicated"
                expansion = size
            else:
                profile = pool.get("erasure_code_profile", "")
                if profile not in profiles:
                    profiles[profile] = self._erasure_expansion(profile)
                expansion = profiles[profile]
                if expansion is None:
                    expansion = size

            samples.extend([
                PG_NUM.sample(number(pool, "pg_num"), name, profile),
                PGP_NUM.sample(number(pool, "pg_placement_num"), name, profile),
                MIN_SIZE.sample(number(pool, "min_size"), name, profile),
                SIZE.sample(size, name, profile),
                QUOTA_MAX_BYTES.sample(number(pool, "quota_max_bytes"), name, profile),
                QUOTA_MAX_OBJECTS.sample(number(pool, "quota_max_objects"), name, profile),
                STRIPE_WIDTH.sample(number(pool, "stripe_width"), name, profile),
                EXPANSION_FACTOR.sample(expansion, name, profile),
            ])
        return samples

    def _erasure_expansion(self, profile: str) -> Optional[float]:
        """
        (k + m) / k of an erasure code profile, rounded to two decimals.

        Returns -1 when the command fails, and None when the profile has no
        usable k and m (the pool size applies then).
        """
        try:
            data = self.admin_json("osd erasure-code-profile get", name=profile)
        except TransportError as e:
            LOG.warning(f"[{self.cluster}] could not read erasure code profile {profile}: {e}")
            return -1.0
        except ParseError:
            return None
        try:
            k = float(data.get("k", ""))
            m = float(data.get("m", ""))
        except (TypeError, ValueError):
            return None
        if k == 0:
            return None
        return round((k + m) / k, 2)
