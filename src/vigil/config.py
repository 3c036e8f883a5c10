"""VIGIL configuration via environment variables.

Threshold overrides are discovered dynamically from VIGIL_THRESHOLD_*
environment variables. Tuning a pattern rule requires only adding a
variable -- no code changes.
"""

import os
import re
import logging
from datetime import timedelta

from vigil.engine.config import (
    DEFAULT_MAX_PROFILES,
    DEFAULT_SHARDS,
    DEFAULT_STALENESS_HOURS,
    DetectorConfig,
)
from vigil.errors import ConfigurationError

logger = logging.getLogger("vigil.config")


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from None


class Settings:
    """All configuration sourced from environment."""

    def __init__(self):
        # Core
        self.version = "0.1.0"
        self.log_level = os.environ.get("VIGIL_LOG_LEVEL", "info")

        # Service wrapper
        self.api_host = os.environ.get("VIGIL_API_HOST", "0.0.0.0")
        self.api_port = _env_int("VIGIL_API_PORT", "3001")
        self.api_key = os.environ.get("VIGIL_API_KEY", "")

        # Profile store
        self.max_profiles = _env_int(
            "VIGIL_MAX_PROFILES", str(DEFAULT_MAX_PROFILES)
        )
        self.staleness_hours = _parse_float(
            "VIGIL_STALENESS_HOURS",
            os.environ.get("VIGIL_STALENESS_HOURS", str(DEFAULT_STALENESS_HOURS)),
        )
        self.store_shards = _env_int("VIGIL_STORE_SHARDS", str(DEFAULT_SHARDS))

        # Pattern thresholds (discovered dynamically)
        self.thresholds = self._discover_thresholds()

    def _discover_thresholds(self) -> dict[str, float]:
        """Collect per-indicator threshold overrides from VIGIL_THRESHOLD_<KEY>.

        The suffix is lower-cased to form the indicator key, so
        VIGIL_THRESHOLD_FAILURE_RATE=0.5 overrides ``failure_rate``.
        Whether the key names a real rule is checked by the pattern
        matcher, not here.
        """
        pattern = re.compile(r"^VIGIL_THRESHOLD_(.+)$")
        thresholds: dict[str, float] = {}

        for key in sorted(os.environ):
            match = pattern.match(key)
            if not match:
                continue
            indicator = match.group(1).lower()
            thresholds[indicator] = _parse_float(key, os.environ[key])
            logger.info(
                "Threshold override [%s] = %s", indicator, thresholds[indicator]
            )

        return thresholds

    def detector_config(self) -> DetectorConfig:
        """Convert to the config object the detector expects."""
        return DetectorConfig(
            max_profiles=self.max_profiles,
            staleness_window=timedelta(hours=self.staleness_hours),
            thresholds=dict(self.thresholds),
            shards=self.store_shards,
        )


settings = Settings()
