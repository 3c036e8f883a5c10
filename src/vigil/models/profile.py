"""Client profile and scoring result data models.

The ClientProfile is the only state VIGIL keeps. One exists per
(tenant_id, client_id) pair, created on the first event for that pair
and updated by every event after it. Profiles live in memory only and
are lost on restart.

AnomalyScore is the output contract: what was matched, how bad it is,
and what the caller should do about it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class BehaviorPattern(str, Enum):
    """Closed set of suspicious-behavior categories.

    DEVICE_CHANGE is reserved: it has a severity but no rule emits it.
    """
    NORMAL = "normal"
    RAPID_FAILURES = "rapid_failures"
    ENUMERATION = "enumeration"
    PAYLOAD_INJECTION = "payload_injection"
    TIMING_ATTACK = "timing_attack"
    RESOURCE_ABUSE = "resource_abuse"
    DEVICE_CHANGE = "device_change"
    ANOMALOUS_LOCATION = "anomalous_location"
    CREDENTIAL_SPRAY = "credential_spray"


class ThreatLevel(str, Enum):
    """Ordered classification bands: SAFE < LOW < MEDIUM < HIGH < CRITICAL."""
    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    # str comparison would order these alphabetically
    def __lt__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_ORDER = list(ThreatLevel)


class ClientProfile(BaseModel):
    """Running behavioral state for one client inside one tenant.

    Mutated only inside the profile store's per-key critical section.
    Anything handed out to callers is a copy.
    """
    tenant_id: str = Field(
        description="Tenant this profile belongs to"
    )
    client_id: str = Field(
        description="Client identifier within the tenant"
    )
    first_seen: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the first event for this key arrived"
    )
    last_seen: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the most recent event for this key arrived"
    )
    total_events: int = Field(
        default=0,
        ge=0,
        description="Events observed for this key; only ever increases"
    )
    average_confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Running mean of event confidence"
    )
    risk_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Decayed running risk: rises immediately, falls 10% per event"
    )
    is_compromised: bool = Field(
        default=False,
        description="Sticky; cleared only by deleting the profile"
    )
    threat_level: ThreatLevel = Field(
        default=ThreatLevel.SAFE,
        description="Most recent classification, cached for inspection"
    )


class AnomalyScore(BaseModel):
    """Result of analyzing one event."""
    client_id: str
    tenant_id: str
    score: float = Field(
        ge=0.0,
        le=1.0,
        description="Combined risk for this event"
    )
    level: ThreatLevel
    detected_patterns: list[BehaviorPattern] = Field(
        default_factory=list,
        description="Matched patterns in fixed evaluation order"
    )
    recommendation: str = Field(
        description="ALLOW, LOG_WARNING, THROTTLE_REQUESTS, REQUIRE_MFA, "
                    "ISOLATE_SESSION or BLOCK_PERMANENTLY"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    class Config:
        frozen = True


class HealthStatus(BaseModel):
    """Operational snapshot of a detector."""
    status: str = "operational"
    events_processed: int = 0
    active_profiles: int = 0
    max_profiles: int = 0
    uptime_seconds: float = 0.0

    class Config:
        frozen = True
