"""Risk scoring, threat classification and profile risk decay.

Matched patterns are turned into a single score in [0, 1]:

1. Each pattern contributes min(1, base_severity * multiplier), where
   the multiplier is 1 + failure_rate when failure_rate was measured.
   failure_rate is the only amplifier.
2. Contributions are summed.
3. Payload injection forces the score to 1.0 and overrides the
   classification to CRITICAL regardless of the sum.
4. The result is clamped to [0, 1] and rounded to 9 decimals, so the
   effective CRITICAL cut is 0.8999999995 rather than 0.9.

The profile's running risk rises immediately on a worse score and
decays 10% per event toward a better one, so a single clean event
cannot wipe out a history of bad ones.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from vigil.engine.patterns import (
    BASE_SEVERITY,
    KEY_FAILURE_RATE,
    ensure_exhaustive,
    sanitize_indicators,
)
from vigil.models.profile import BehaviorPattern, ClientProfile, ThreatLevel

logger = logging.getLogger("vigil.engine.scoring")

# Scores are rounded before classification so that products such as
# 0.6 * 1.5 land on the 0.9 cut point instead of 0.8999999999999999.
# Each cut point therefore sits half a unit of the 9th decimal lower:
# anything from 0.8999999995 up classifies as CRITICAL.
SCORE_PRECISION = 9

DECAY_RETAIN = 0.9
DECAY_ADMIT = 0.1

# Inclusive lower bound of each band, checked from most to least severe
LEVEL_CUTS: dict[ThreatLevel, float] = {
    ThreatLevel.CRITICAL: 0.9,
    ThreatLevel.HIGH: 0.75,
    ThreatLevel.MEDIUM: 0.5,
    ThreatLevel.LOW: 0.25,
    ThreatLevel.SAFE: 0.0,
}

RECOMMENDATIONS: dict[ThreatLevel, str] = {
    ThreatLevel.CRITICAL: "ISOLATE_SESSION",
    ThreatLevel.HIGH: "REQUIRE_MFA",
    ThreatLevel.MEDIUM: "THROTTLE_REQUESTS",
    ThreatLevel.LOW: "LOG_WARNING",
    ThreatLevel.SAFE: "ALLOW",
}

# Returned by the compromised fast path instead of a level-derived action
BLOCK_PERMANENTLY = "BLOCK_PERMANENTLY"

ensure_exhaustive(LEVEL_CUTS, ThreatLevel, "LEVEL_CUTS")
ensure_exhaustive(RECOMMENDATIONS, ThreatLevel, "RECOMMENDATIONS")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


class ScoringEngine:
    """Combines matched patterns into a score and a threat level.

    Holds no per-client state; profile updates are applied to the
    profile passed in, under whatever lock the caller holds.
    """

    def pattern_score(
        self,
        pattern: BehaviorPattern,
        indicators: Mapping[str, float],
    ) -> float:
        """Score a single matched pattern, amplified by failure_rate."""
        multiplier = 1.0
        failure_rate = indicators.get(KEY_FAILURE_RATE)
        if failure_rate is not None:
            multiplier = 1.0 + failure_rate
        return round(min(1.0, BASE_SEVERITY[pattern] * multiplier), SCORE_PRECISION)

    def score(
        self,
        patterns: Sequence[BehaviorPattern],
        indicators: Mapping[str, float],
    ) -> tuple[float, bool]:
        """Combine matched patterns into (score, critical_override).

        Args:
            patterns: Patterns emitted by the pattern matcher.
            indicators: The event's indicators; sanitised here so a
                raw failure_rate cannot push the multiplier past 2.

        Returns:
            The clamped score and whether payload injection forced it.
        """
        clean = sanitize_indicators(indicators)
        raw_score = sum(self.pattern_score(p, clean) for p in patterns)

        critical_override = BehaviorPattern.PAYLOAD_INJECTION in patterns
        if critical_override:
            raw_score = 1.0

        return round(clamp(raw_score), SCORE_PRECISION), critical_override

    def classify(self, score: float, critical_override: bool = False) -> ThreatLevel:
        """Map a score onto its threat band (lower bounds inclusive)."""
        if critical_override:
            return ThreatLevel.CRITICAL
        for level, lower_bound in LEVEL_CUTS.items():
            if score >= lower_bound:
                return level
        return ThreatLevel.SAFE

    def recommend(self, level: ThreatLevel) -> str:
        return RECOMMENDATIONS[level]

    def update_profile(
        self,
        profile: ClientProfile,
        score: float,
        level: ThreatLevel,
    ) -> None:
        """Apply asymmetric decay and the sticky compromise flag.

        Must be called with the profile's key locked.
        """
        if score > profile.risk_score:
            profile.risk_score = score
        else:
            profile.risk_score = round(
                profile.risk_score * DECAY_RETAIN + score * DECAY_ADMIT,
                SCORE_PRECISION,
            )
        profile.threat_level = level

        if level == ThreatLevel.CRITICAL and not profile.is_compromised:
            profile.is_compromised = True
            profile.risk_score = 1.0
            logger.info(
                "Client marked compromised [%s/%s] at score %.3f",
                profile.tenant_id, profile.client_id, score,
                extra={
                    "tenant_id": profile.tenant_id,
                    "client_id": profile.client_id,
                    "score": score,
                },
            )
