"""Construction-time options for the anomaly detector.

Kept apart from ``vigil.config`` so the core can be imported and built
without reading the environment.
"""

from dataclasses import dataclass, field
from datetime import timedelta

DEFAULT_MAX_PROFILES = 100_000
DEFAULT_STALENESS_HOURS = 24
DEFAULT_SHARDS = 64


@dataclass
class DetectorConfig:
    """Everything the detector consumes at construction.

    Validation happens in AnomalyDetector, not here, so a config can be
    built piecemeal in tests and still be rejected at the one place
    that matters.
    """
    max_profiles: int = DEFAULT_MAX_PROFILES
    staleness_window: timedelta = field(
        default_factory=lambda: timedelta(hours=DEFAULT_STALENESS_HOURS)
    )
    thresholds: dict[str, float] = field(default_factory=dict)
    shards: int = DEFAULT_SHARDS
