# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Metric family definitions and samples produced by the collectors.

Collectors only build MetricSample objects; the Prometheus writer turns them
into metric families and adds the ``cluster`` label.
"""

from dataclasses import dataclass
from typing import Tuple

NAMESPACE = "ceph"

GAUGE = "gauge"
COUNTER = "counter"


@dataclass(frozen=True)
class MetricDef:
    """Static description of one metric family."""
    name: str
    documentation: str
    label_names: Tuple[str, ...] = ()
    kind: str = GAUGE

    @property
    def full_name(self) -> str:
        return f"{NAMESPACE}_{self.name}"

    def sample(self, value: float, *label_values) -> 'MetricSample':
        """
        Build a sample for this family.

        Args:
            value: Sample value
            label_values: One value per declared label, in declaration order

        Raises:
            ValueError: If the number of label values does not match the family
        """
        if len(label_values) != len(self.label_names):
            raise ValueError(
                f"{self.full_name} expects labels {self.label_names}, got {label_values}")
        return MetricSample(self, tuple("" if v is None else str(v) for v in label_values), float(value))


@dataclass(frozen=True)
class MetricSample:
    metric: MetricDef
    label_values: Tuple[str, ...]
    value: float

    @property
    def name(self) -> str:
        return self.metric.full_name

    @property
    def labels(self) -> dict:
        return dict(zip(self.metric.label_names, self.label_values))
