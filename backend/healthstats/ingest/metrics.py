"""
Per-metric processing parameters.

Each supported metric is described by a MetricConfig; the processor engine is
the same for all of them.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..models import MetricType

DEFAULT_NO_MATCH_LIMIT = 2_000_000


@dataclass(frozen=True)
class MetricConfig:
    """Validation, rounding and convergence parameters for one metric type."""
    metric: MetricType
    label: str
    type_identifier: str
    default_unit: str
    precision: int = 2
    scale: float = 1.0
    min_value: float = 0.0
    max_value: float = math.inf
    min_exclusive: bool = True
    log_interval: int = 1000
    convergence_window: int = 20
    no_match_limit: int = DEFAULT_NO_MATCH_LIMIT
    # (bucket, substrings) checked in order against the lower-cased source name
    source_buckets: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    context_key: Optional[str] = None
    context_values: Dict[str, str] = field(default_factory=dict)

    def in_range(self, value: float) -> bool:
        if self.min_exclusive:
            if value <= self.min_value:
                return False
        elif value < self.min_value:
            return False
        return value <= self.max_value

    def classify_source(self, source: Optional[str]) -> str:
        if not source:
            return "unknown"
        lowered = source.lower()
        for bucket, needles in self.source_buckets:
            if any(needle in lowered for needle in needles):
                return bucket
        return "other"

    def normalize_context(self, raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        return self.context_values.get(raw.strip(), "unknown")

    @property
    def window_fragments(self) -> int:
        """Fragments without a new record after which the scan stops."""
        return self.log_interval * self.convergence_window


WEIGHT = MetricConfig(
    metric=MetricType.WEIGHT,
    label="weight",
    type_identifier="HKQuantityTypeIdentifierBodyMass",
    default_unit="kg",
    precision=2,
    log_interval=1000,
    convergence_window=50,
    source_buckets=(
        ("withings", ("withings",)),
        ("renpho", ("renpho",)),
        ("eufy", ("eufy",)),
        ("manual", ("health",)),
    ),
)

BODY_FAT = MetricConfig(
    metric=MetricType.BODY_FAT,
    label="body fat",
    type_identifier="HKQuantityTypeIdentifierBodyFatPercentage",
    default_unit="%",
    precision=2,
    scale=100.0,  # exports store a 0-1 fraction
    log_interval=1000,
    convergence_window=20,
    source_buckets=(
        ("withings", ("withings",)),
        ("renpho", ("renpho",)),
        ("eufy", ("eufy",)),
        ("manual", ("health",)),
    ),
)

HRV = MetricConfig(
    metric=MetricType.HRV,
    label="HRV",
    type_identifier="HKQuantityTypeIdentifierHeartRateVariabilitySDNN",
    default_unit="ms",
    precision=2,
    min_value=0.0,
    max_value=500.0,
    min_exclusive=False,
    log_interval=2000,
    convergence_window=30,
    source_buckets=(
        ("apple_watch", ("watch",)),
        ("oura", ("oura",)),
        ("whoop", ("whoop",)),
        ("garmin", ("garmin", "connect")),
    ),
    context_key="HKMetadataKeyHeartRateMotionContext",
    context_values={"0": "not_set", "1": "sedentary", "2": "active"},
)

VO2_MAX = MetricConfig(
    metric=MetricType.VO2_MAX,
    label="VO2 max",
    type_identifier="HKQuantityTypeIdentifierVO2Max",
    default_unit="mL/min·kg",
    precision=1,
    min_value=10.0,
    max_value=100.0,
    min_exclusive=False,
    log_interval=1000,
    convergence_window=20,
    source_buckets=(
        ("apple_watch", ("watch",)),
        ("garmin", ("garmin", "connect")),
        ("polar", ("polar",)),
    ),
)

# Processing order for one run
METRIC_CONFIGS: List[MetricConfig] = [WEIGHT, BODY_FAT, HRV, VO2_MAX]


def get_metric_config(metric: MetricType) -> MetricConfig:
    for config in METRIC_CONFIGS:
        if config.metric == MetricType(metric):
            return config
    raise KeyError(f"No configuration for metric {metric}")
