"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, Field

ModelTier = Literal["fast", "primary"]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "clinic-pulse"


# ── Writes ───────────────────────────────────────────────────────────


class RiskAssessmentIn(BaseModel):
    """Assessment upserted by ``appointment_id``."""

    appointment_id: str = Field(..., min_length=1)
    assessment_id: str | None = None
    risk_score: float | None = Field(None, ge=0, le=100)
    risk_badge: Literal["Low", "Medium", "High"] | None = None
    primary_risk_factor: str | None = None
    secondary_risk_factor: str | None = None
    contributing_factors: list[str] = Field(default_factory=list)
    predicted_show_probability: float | None = Field(None, ge=0, le=1)
    weather_condition: str | None = None
    weather_impact_score: float | None = None
    virtual_eligible: bool = False
    virtual_reason: str | None = None
    virtual_confidence: float | None = Field(None, ge=0, le=1)
    model_version: str | None = None


class WriteResponse(BaseModel):
    success: bool = True
    changes: int


class AssignSlotRequest(BaseModel):
    """Both ids are checked by the route so a missing one is a 400."""

    waitlist_id: str | None = None
    appointment_id: str | None = None


class AuditLogIn(BaseModel):
    """One agent call reported by a client.  ``log_id`` is generated when absent."""

    log_id: str | None = None
    request_id: str
    agent_type: str
    timestamp: dt.datetime | None = None
    latency_ms: float = 0
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0
    status: Literal["success", "error", "partial"]
    error_message: str | None = None
    appointment_id: str | None = None
    patient_id: str | None = None


# ── Agent requests ───────────────────────────────────────────────────


class GenerateRiskRequest(BaseModel):
    date: dt.date = Field(..., description="Appointment day to score (YYYY-MM-DD)")
    provider_id: str | None = None
    model: ModelTier = "fast"


class GenerateRiskResponse(BaseModel):
    date: dt.date
    provider_id: str | None
    total: int
    succeeded: int
    failed: int
    results: list[dict[str, Any]]


class CampaignRequest(BaseModel):
    date: dt.date
    provider_id: str = Field(..., min_length=1)
    model: ModelTier = "fast"


class WaitlistAnalysisRequest(BaseModel):
    provider_id: str = Field(..., min_length=1)
    model: ModelTier = "fast"


class DailySummaryRequest(BaseModel):
    date: dt.date
    provider_id: str = Field(..., min_length=1)
    model: ModelTier = "fast"


class VirtualEligibilityRequest(BaseModel):
    model: ModelTier = "fast"
