"""Anomaly detector: the single entry point into the VIGIL core.

Drives each event through the analysis sequence:
look up or create the profile -> short-circuit compromised clients ->
match patterns -> score -> update the profile -> return the result.

Construct exactly once per process (see ``initialize``) and share the
instance with every request handler. A detector built per request
starts with an empty store every time, which silently turns VIGIL into
stateless scoring and makes compromise tracking useless.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from vigil.engine.config import DetectorConfig
from vigil.engine.patterns import PatternMatcher, sanitize_indicators
from vigil.engine.scoring import BLOCK_PERMANENTLY, ScoringEngine
from vigil.engine.store import ProfileStore, utc_now
from vigil.errors import ConfigurationError
from vigil.models.events import Event
from vigil.models.profile import (
    AnomalyScore,
    ClientProfile,
    HealthStatus,
    ThreatLevel,
)

logger = logging.getLogger("vigil.engine.detector")


class AnomalyDetector:
    """Thread-safe facade over the profile store and scoring pipeline.

    Events for different (tenant, client) keys are analyzed in parallel.
    Events for the same key are serialized by the store, so each one
    sees the profile exactly as the previous one left it.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        config = config or DetectorConfig()
        if config.max_profiles <= 0:
            raise ConfigurationError(
                f"max_profiles must be positive, got {config.max_profiles}"
            )
        if config.staleness_window < timedelta(0):
            raise ConfigurationError(
                f"staleness_window must not be negative, got {config.staleness_window}"
            )

        self.config = config
        self._clock = clock
        self._matcher = PatternMatcher(config.thresholds)
        self._scoring = ScoringEngine()
        self._store = ProfileStore(shards=config.shards, clock=clock)

        self._events_processed = 0
        self._counter_lock = threading.Lock()
        self._started = time.monotonic()

    @property
    def store(self) -> ProfileStore:
        return self._store

    @property
    def matcher(self) -> PatternMatcher:
        return self._matcher

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, event: Event) -> AnomalyScore:
        """Score one event and fold it into the client's profile.

        Never raises for a well-formed Event. Out-of-range indicators
        are clamped, unknown ones ignored.
        """
        with self._counter_lock:
            self._events_processed += 1

        indicators = sanitize_indicators(event.indicators)

        def _analyze_locked(profile: ClientProfile, created: bool) -> AnomalyScore:
            now = self._clock()
            profile.last_seen = now
            profile.total_events += 1
            profile.average_confidence += (
                (event.confidence - profile.average_confidence) / profile.total_events
            )

            if profile.is_compromised:
                return AnomalyScore(
                    client_id=event.client_id,
                    tenant_id=event.tenant_id,
                    score=1.0,
                    level=ThreatLevel.CRITICAL,
                    detected_patterns=[],
                    recommendation=BLOCK_PERMANENTLY,
                    timestamp=now,
                )

            patterns = self._matcher.detect(indicators)
            score, critical_override = self._scoring.score(patterns, indicators)
            level = self._scoring.classify(score, critical_override)
            self._scoring.update_profile(profile, score, level)

            return AnomalyScore(
                client_id=event.client_id,
                tenant_id=event.tenant_id,
                score=score,
                level=level,
                detected_patterns=patterns,
                recommendation=self._scoring.recommend(level),
                timestamp=now,
            )

        result = self._store.update(
            event.tenant_id,
            event.client_id,
            _analyze_locked,
            before_admit=self._make_room,
        )

        if result.level >= ThreatLevel.HIGH:
            logger.info(
                "Anomaly [%s/%s]: score=%.3f level=%s patterns=%s action=%s",
                result.tenant_id,
                result.client_id,
                result.score,
                result.level.value,
                [p.value for p in result.detected_patterns],
                result.recommendation,
                extra={
                    "tenant_id": result.tenant_id,
                    "client_id": result.client_id,
                    "level_assessed": result.level.value,
                    "score": result.score,
                },
            )
        else:
            logger.debug(
                "Scored [%s/%s]: score=%.3f level=%s",
                result.tenant_id, result.client_id, result.score, result.level.value,
            )
        return result

    def _make_room(self) -> None:
        """Enforce the profile cap before a new key is admitted.

        Runs under the store's admission lock. Stale eviction first;
        if every key is still fresh (a high-cardinality flood), wipe the
        store rather than grow past the cap.
        """
        if self._store.size() < self.config.max_profiles:
            return

        evicted = self._store.evict_stale(self.config.staleness_window)
        if self._store.size() < self.config.max_profiles:
            return

        dropped = self._store.clear_all()
        logger.warning(
            "Profile store still at capacity after evicting %d stale profiles; "
            "cleared %d profiles (max_profiles=%d)",
            evicted, dropped, self.config.max_profiles,
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def get_profile(self, tenant_id: str, client_id: str) -> Optional[ClientProfile]:
        """Snapshot of one profile, or None if the key is unknown."""
        return self._store.get(tenant_id, client_id)

    def get_all_profiles(self) -> list[ClientProfile]:
        """Consistent point-in-time copy of every profile."""
        return self._store.snapshot()

    def mark_compromised(self, tenant_id: str, client_id: str) -> Optional[ClientProfile]:
        """Flag a known client as compromised. Returns the updated snapshot or None."""
        def _mark(profile: ClientProfile) -> ClientProfile:
            profile.is_compromised = True
            profile.risk_score = 1.0
            profile.threat_level = ThreatLevel.CRITICAL
            return profile.model_copy()

        snapshot = self._store.update_existing(tenant_id, client_id, _mark)
        if snapshot is None:
            return None
        logger.info(
            "Profile marked compromised by operator [%s/%s]",
            tenant_id, client_id,
            extra={"tenant_id": tenant_id, "client_id": client_id},
        )
        return snapshot

    def reset_profile(self, tenant_id: str, client_id: str) -> bool:
        """Delete a profile, compromise flag included. False if it did not exist."""
        removed = self._store.remove(tenant_id, client_id)
        if removed:
            logger.info(
                "Profile reset [%s/%s]", tenant_id, client_id,
                extra={"tenant_id": tenant_id, "client_id": client_id},
            )
        return removed

    def evict_stale(self) -> int:
        """Run the staleness sweep with the configured window."""
        return self._store.evict_stale(self.config.staleness_window)

    def health(self) -> HealthStatus:
        with self._counter_lock:
            processed = self._events_processed
        return HealthStatus(
            status="operational",
            events_processed=processed,
            active_profiles=self._store.size(),
            max_profiles=self.config.max_profiles,
            uptime_seconds=round(time.monotonic() - self._started, 3),
        )


def initialize(config: Optional[DetectorConfig] = None) -> AnomalyDetector:
    """Build the process-wide detector.

    Call this exactly once at startup and hand the returned instance to
    every request handler. Calling it inside a handler creates a fresh,
    empty detector per request: history is lost and compromised clients
    are never blocked.
    """
    detector = AnomalyDetector(config)
    logger.info(
        "VIGIL anomaly detector initialized: max_profiles=%d staleness=%s shards=%d",
        detector.config.max_profiles,
        detector.config.staleness_window,
        detector.config.shards,
    )
    overrides = detector.config.thresholds
    if overrides:
        logger.info("Threshold overrides active: %s", overrides)
    return detector
