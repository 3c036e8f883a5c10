"""Inbound behavior event.

Events reach VIGIL with their indicators already computed upstream
(failure rates, injection scores, location risk, ...). The envelope
carries the identity fields that select a profile; the indicator map
is read, sanitised copies are scored, and the original is never
modified.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class Event(BaseModel):
    """Immutable envelope around one client action within a tenant.

    Indicator keys are not predeclared. Keys no rule reads are ignored,
    and a missing key means "not measured", never zero.
    """
    tenant_id: str = Field(
        description="Isolation boundary; profiles never cross tenants"
    )
    client_id: str = Field(
        description="Client identifier, unique only within its tenant"
    )
    indicators: dict[str, float] = Field(
        default_factory=dict,
        description="Named numeric signals produced upstream (e.g. failure_rate)"
    )
    confidence: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Producer confidence in the indicators (tracked, not scored)"
    )
    metadata: dict[str, str] = Field(
        default_factory=dict,
        description="Free-form context carried alongside the event, never scored"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (defaults to receipt time)"
    )

    class Config:
        frozen = True
