"""Indicator-to-pattern rule evaluation.

Each rule reads one named indicator and compares it against a fixed
threshold. Rules are pure: no state, no side effects, no knowledge of
the client's history. History lives in the profile and is applied by
the scoring engine, never here.

A missing indicator never fires a rule. Absence means the upstream
producer did not measure the behavior, which is not the same as
measuring zero.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from vigil.errors import ConfigurationError
from vigil.models.profile import BehaviorPattern

# ---------------------------------------------------------------------------
# Indicator keys and thresholds
# ---------------------------------------------------------------------------

KEY_INJECTION_SCORE = "injection_score"
KEY_SPRAY_SCORE = "spray_score"
KEY_ENUMERATION_SCORE = "enumeration_score"
KEY_RESOURCE_USAGE = "resource_usage"
KEY_FAILURE_RATE = "failure_rate"
KEY_TIMING_VARIANCE = "timing_variance"
KEY_LOCATION_RISK = "location_risk"

# Ratios and probabilities, clamped into [0, 1] before evaluation
UNIT_INDICATORS = frozenset({
    KEY_INJECTION_SCORE,
    KEY_SPRAY_SCORE,
    KEY_ENUMERATION_SCORE,
    KEY_RESOURCE_USAGE,
    KEY_FAILURE_RATE,
    KEY_LOCATION_RISK,
})

# Milliseconds; only floored at zero
RANGE_INDICATORS = frozenset({KEY_TIMING_VARIANCE})

KNOWN_INDICATORS = UNIT_INDICATORS | RANGE_INDICATORS

DEFAULT_THRESHOLDS: dict[str, float] = {
    KEY_INJECTION_SCORE: 0.8,
    KEY_SPRAY_SCORE: 0.7,
    KEY_ENUMERATION_SCORE: 0.7,
    KEY_RESOURCE_USAGE: 0.85,
    KEY_FAILURE_RATE: 0.4,
    # Upper bound of the robotic-jitter window; the lower bound is always 0
    KEY_TIMING_VARIANCE: 10.0,
    KEY_LOCATION_RISK: 0.8,
}

BASE_SEVERITY: dict[BehaviorPattern, float] = {
    BehaviorPattern.NORMAL: 0.0,
    BehaviorPattern.PAYLOAD_INJECTION: 1.0,
    BehaviorPattern.CREDENTIAL_SPRAY: 0.9,
    BehaviorPattern.ENUMERATION: 0.8,
    BehaviorPattern.RESOURCE_ABUSE: 0.7,
    BehaviorPattern.RAPID_FAILURES: 0.6,
    BehaviorPattern.TIMING_ATTACK: 0.5,
    BehaviorPattern.DEVICE_CHANGE: 0.4,
    BehaviorPattern.ANOMALOUS_LOCATION: 0.3,
}


def ensure_exhaustive(table: Mapping, enum_type: type[Enum], name: str) -> None:
    """Fail at import time if a per-variant table misses a variant."""
    missing = [member.name for member in enum_type if member not in table]
    if missing:
        raise RuntimeError(
            f"{name} has no entry for {enum_type.__name__} "
            f"variant(s): {', '.join(missing)}"
        )


ensure_exhaustive(BASE_SEVERITY, BehaviorPattern, "BASE_SEVERITY")


# ---------------------------------------------------------------------------
# Sanitising
# ---------------------------------------------------------------------------


def sanitize_indicators(indicators: Mapping[str, float]) -> dict[str, float]:
    """Return a clean copy of the indicators the rules understand.

    Producers are untrusted, so out-of-range input is clamped rather
    than rejected:

    - unknown keys are dropped
    - NaN is dropped (treated as not measured)
    - unit indicators are clamped to [0, 1], infinities included
    - timing_variance is floored at 0; +inf is kept and never fires
    """
    clean: dict[str, float] = {}
    for key, raw in indicators.items():
        if key not in KNOWN_INDICATORS:
            continue
        value = float(raw)
        if math.isnan(value):
            continue
        if key in UNIT_INDICATORS:
            value = min(1.0, max(0.0, value))
        else:
            value = max(0.0, value)
        clean[key] = value
    return clean


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternRule:
    """One threshold rule: indicator key, emitted pattern, comparison."""
    pattern: BehaviorPattern
    indicator: str
    window: bool = False

    def fires(self, indicators: Mapping[str, float], threshold: float) -> bool:
        value = indicators.get(self.indicator)
        if value is None:
            return False
        if self.window:
            return 0.0 < value < threshold
        return value > threshold


# Evaluation order is the order of the returned pattern list
RULES: tuple[PatternRule, ...] = (
    PatternRule(BehaviorPattern.PAYLOAD_INJECTION, KEY_INJECTION_SCORE),
    PatternRule(BehaviorPattern.CREDENTIAL_SPRAY, KEY_SPRAY_SCORE),
    PatternRule(BehaviorPattern.ENUMERATION, KEY_ENUMERATION_SCORE),
    PatternRule(BehaviorPattern.RESOURCE_ABUSE, KEY_RESOURCE_USAGE),
    PatternRule(BehaviorPattern.RAPID_FAILURES, KEY_FAILURE_RATE),
    PatternRule(BehaviorPattern.TIMING_ATTACK, KEY_TIMING_VARIANCE, window=True),
    PatternRule(BehaviorPattern.ANOMALOUS_LOCATION, KEY_LOCATION_RISK),
)


class PatternMatcher:
    """Stateless evaluator of the fixed rule set.

    Thresholds may be overridden per indicator key at construction.
    Safe to share across threads: nothing is mutated after __init__.
    """

    def __init__(self, thresholds: Mapping[str, float] | None = None):
        merged = dict(DEFAULT_THRESHOLDS)
        for key, value in (thresholds or {}).items():
            if key not in DEFAULT_THRESHOLDS:
                raise ConfigurationError(
                    f"Unknown threshold override {key!r}; "
                    f"expected one of {sorted(DEFAULT_THRESHOLDS)}"
                )
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Threshold override {key!r} must be numeric, got {value!r}"
                ) from None
            if not math.isfinite(value):
                raise ConfigurationError(
                    f"Threshold override {key!r} must be finite, got {value!r}"
                )
            merged[key] = value
        self._thresholds = merged

    @property
    def thresholds(self) -> dict[str, float]:
        return dict(self._thresholds)

    def detect(self, indicators: Mapping[str, float]) -> list[BehaviorPattern]:
        """Return matched patterns in fixed evaluation order.

        Raw producer maps are fine: they are sanitised first, and
        sanitising an already clean map is a no-op.
        """
        clean = sanitize_indicators(indicators)
        return [
            rule.pattern
            for rule in RULES
            if rule.fires(clean, self._thresholds[rule.indicator])
        ]
