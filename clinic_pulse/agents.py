"""Structured-output agents for the scheduling dashboard.

Every agent follows the same sequence:

  1. build a user prompt from the rows it was handed
  2. ask the model for exactly one structured answer (forced tool call)
  3. audit the call (latency, tokens, cost, status)
  4. return the parsed answer, with any deterministic fields added by code

The agents never read or write the database themselves; callers load the
inputs and decide what to persist.  All scoring, ranking and copywriting
is the model's; the only arithmetic here is prompt context (lead time,
wait days, weather risk points) and bookkeeping (rankings, counts).

Agents accept ``tier`` (``"fast"`` or ``"primary"``) to pick the model.
``llm`` and ``audit`` are injectable for tests.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import UTC, date, datetime
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field

from clinic_pulse.prompts import (
    CAMPAIGN_SYSTEM_PROMPT,
    CAMPAIGN_USER_TEMPLATE,
    DAILY_SUMMARY_SYSTEM_PROMPT,
    DAILY_SUMMARY_USER_TEMPLATE,
    RISK_SYSTEM_PROMPT,
    RISK_USER_TEMPLATE,
    VIRTUAL_SYSTEM_PROMPT,
    VIRTUAL_USER_TEMPLATE,
    WAITLIST_SYSTEM_PROMPT,
    WAITLIST_USER_TEMPLATE,
)
from clinic_pulse.services.audit import AuditLogger, audit_logger
from clinic_pulse.services.llm import Tier, build_llm, invoke_structured, model_for_tier

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)

WEATHER_SENSITIVE_COMMUTES = frozenset({"bike", "public_transport"})


# ── Output schemas ───────────────────────────────────────────────────
# Class docstrings and field descriptions are sent to the model as the
# tool description, so they are written for the model.


class RiskAssessmentOutput(BaseModel):
    """Generate a no-show risk assessment for a patient appointment."""

    risk_score: float = Field(
        ..., ge=0, le=100, description="Risk score from 0 (will show) to 100 (will no-show)",
    )
    risk_badge: Literal["Low", "Medium", "High"] = Field(
        ..., description="Risk category for UI display",
    )
    primary_risk_factor: str
    secondary_risk_factor: str | None = None
    contributing_factors: list[str] = Field(
        default_factory=list, description="Additional risk factors",
    )
    predicted_show_probability: float = Field(
        ..., ge=0, le=1, description="Probability the patient will show (0-1)",
    )
    recommendation: str | None = None


class VirtualEligibilityOutput(BaseModel):
    """Determine whether an appointment can be conducted virtually."""

    virtual_eligible: bool = Field(..., description="Can this appointment be virtual?")
    virtual_reason: str = Field(
        ...,
        description=(
            "Clinical rationale for the visit type and complaint first, then "
            "supporting context (max 250 chars)"
        ),
    )
    confidence: float = Field(..., ge=0, le=1, description="Confidence in the assessment")


class EmailMessage(BaseModel):
    subject: str
    body: str


class TouchpointMessages(BaseModel):
    sms: str = Field(..., description="SMS message (max 160 chars)")
    email: EmailMessage
    ehr_notification: str = Field(
        ..., description="Patient portal notification (max 200 chars)",
    )


class CampaignTouchpoint(BaseModel):
    timing: str = Field(..., description='When the message is sent, e.g. "1 day before"')
    messages: TouchpointMessages


CampaignCategory = Literal[
    "low", "medium", "virtual", "new_patient", "high_risk_virtual", "high_risk_non_virtual",
]


class CategoryCampaign(BaseModel):
    category: CampaignCategory
    touchpoints: list[CampaignTouchpoint]


class BulkCampaignOutput(BaseModel):
    """Generate outreach campaigns for all risk categories."""

    campaigns: list[CategoryCampaign] = Field(..., description="One campaign per category")


class WaitlistPriorityPatient(BaseModel):
    waitlist_id: str
    patient_name: str
    priority_score: float = Field(
        ..., ge=0, le=100, description="Priority score 0-100 (100 = most urgent)",
    )
    urgency_level: Literal["Critical", "High", "Medium", "Low"]
    wait_time_days: int
    recommended_action: str = Field(..., description="Specific next step for this patient")
    clinical_summary: str = Field(
        ..., description="Why this patient is prioritized (2-3 sentences)",
    )
    chief_complaint: str
    provider_preference: str


class WaitlistAnalysisOutput(BaseModel):
    """Prioritize a waitlist by urgency, wait time and clinical need."""

    priority_patients: list[WaitlistPriorityPatient] = Field(
        ..., description="Patients ranked from highest to lowest priority",
    )
    summary: str = Field(..., description="Overall waitlist status (2-3 sentences)")
    recommendations: list[str] = Field(
        ..., description="Actionable recommendations for the scheduling team",
    )


class DailySummaryOutput(BaseModel):
    """Generate a physician's briefing for the next clinic day."""

    executive_summary: str = Field(..., description="Overview of the day (3-4 sentences)")
    key_insights: list[str] = Field(..., description="3-5 notable items for the day")
    recommendations: list[str] = Field(..., description="2-4 actionable recommendations")


# ── Shared plumbing ──────────────────────────────────────────────────


async def _run_agent(
    agent_type: str,
    output_model: type[OutputT],
    system_prompt: str,
    user_prompt: str,
    *,
    tier: Tier,
    llm: Any | None,
    audit: AuditLogger | None,
    **context: Any,
) -> OutputT:
    model = model_for_tier(tier)
    llm = llm if llm is not None else build_llm(tier)
    audit = audit if audit is not None else audit_logger

    async with audit.track(agent_type, model, **context) as call:
        parsed, call.usage = await invoke_structured(
            llm, output_model, system_prompt, user_prompt,
        )
    return parsed


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return datetime.fromisoformat(str(value).replace(" ", "T"))


def _as_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def calculate_weather_risk(weather: dict[str, Any] | None, commute_type: str | None) -> int:
    """Risk points the forecast adds for this commute type."""
    if not weather:
        return 0
    sensitive = commute_type in WEATHER_SENSITIVE_COMMUTES
    condition = weather.get("condition")
    if condition == "Snowy":
        return 25 if sensitive else 10
    if condition == "Rainy":
        return 15 if sensitive else 5
    return 0


def booking_lead_time_days(scheduled_time: Any, booked_at: Any = None) -> int:
    """Whole days between booking and the visit, rounded up."""
    scheduled = _as_datetime(scheduled_time)
    booked = _as_datetime(booked_at) or _now()
    return math.ceil((scheduled - booked).total_seconds() / 86_400)


def describe_weather(weather: dict[str, Any] | None) -> str:
    if not weather:
        return "Unknown"
    return (
        f"{weather['condition']} ({weather.get('temperature_f')}°F, "
        f"{weather.get('precipitation_pct')}% precipitation)"
    )


# ── Agent 1: no-show risk scorer ─────────────────────────────────────


async def generate_risk_score(
    patient: dict[str, Any],
    appointment: dict[str, Any],
    history: dict[str, Any] | None,
    weather: dict[str, Any] | None = None,
    *,
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> dict[str, Any]:
    """Score one appointment's no-show risk.

    Returns the model's assessment plus ``weather_condition`` and
    ``weather_impact_score`` so the caller can persist the context the
    score was produced under.
    """
    history = history or {}
    weather_risk = calculate_weather_risk(weather, patient.get("commute_type"))
    lead_time = booking_lead_time_days(
        appointment["scheduled_time"], appointment.get("booked_at"),
    )

    user_prompt = RISK_USER_TEMPLATE.format(
        patient_name=patient["name"],
        total_appointments=history.get("total_appointments", 0),
        completed=history.get("completed", 0),
        no_shows=history.get("no_shows", 0),
        no_show_pct=round((history.get("no_show_rate") or 0) * 100),
        recent_reschedules=history.get("recent_reschedules", 0),
        appointment_type=appointment.get("appointment_type"),
        lead_time_days=lead_time,
        distance_miles=patient.get("distance_miles"),
        age=patient.get("age"),
        commute_type=patient.get("commute_type"),
        weather_description=describe_weather(weather),
        weather_risk=weather_risk,
    )

    result = await _run_agent(
        "risk_scorer",
        RiskAssessmentOutput,
        RISK_SYSTEM_PROMPT,
        user_prompt,
        tier=tier,
        llm=llm,
        audit=audit,
        appointment_id=appointment["appointment_id"],
        patient_id=patient["patient_id"],
    )
    return {
        **result.model_dump(),
        "weather_condition": weather.get("condition") if weather else None,
        "weather_impact_score": weather_risk,
    }


# ── Agent 2: virtual eligibility ─────────────────────────────────────


async def assess_virtual_eligibility(
    appointment: dict[str, Any],
    patient: dict[str, Any] | None = None,
    weather: dict[str, Any] | None = None,
    *,
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> dict[str, Any]:
    """Decide whether the appointment can be a video visit."""
    context = ""
    if patient:
        preference = (
            "Yes (prefers virtual)" if patient.get("preferred_virtual") else "No (prefers in-person)"
        )
        context += (
            "\n\nPatient context:"
            f"\n- Distance from clinic: {patient.get('distance_miles')} miles"
            f"\n- Commute type: {patient.get('commute_type')}"
            f"\n- Virtual preference: {preference}"
        )
    if weather:
        context += (
            "\n\nWeather forecast:"
            f"\n- Condition: {weather['condition']}"
            f"\n- Temperature: {weather.get('temperature_f')}°F"
            f"\n- Precipitation: {weather.get('precipitation_pct')}%"
        )

    user_prompt = VIRTUAL_USER_TEMPLATE.format(
        appointment_type=appointment.get("appointment_type"),
        chief_complaint=appointment.get("chief_complaint"),
        context=context,
    )
    result = await _run_agent(
        "virtual_eligibility",
        VirtualEligibilityOutput,
        VIRTUAL_SYSTEM_PROMPT,
        user_prompt,
        tier=tier,
        llm=llm,
        audit=audit,
        appointment_id=appointment["appointment_id"],
        patient_id=appointment.get("patient_id"),
    )
    return result.model_dump()


# ── Agent 3: outreach campaigns ──────────────────────────────────────


async def generate_bulk_campaigns(
    day: date | str,
    provider_name: str,
    weather_condition: str | None = None,
    weather_temp: float | None = None,
    *,
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> dict[str, Any]:
    """Write SMS / email / portal copy for every risk category of a day."""
    appointment_day = _as_date(day)
    date_long = (
        f"{appointment_day:%A}, {appointment_day:%B} {appointment_day.day}, {appointment_day.year}"
    )
    date_short = f"{appointment_day:%b} {appointment_day.day}"
    weather_line = (
        f"Weather forecast: {weather_condition}, {weather_temp}°F - may impact travel"
        if weather_condition
        else "Weather: clear conditions expected"
    )

    user_prompt = CAMPAIGN_USER_TEMPLATE.format(
        date_long=date_long,
        date_short=date_short,
        provider_name=provider_name,
        weather_line=weather_line,
    )
    result = await _run_agent(
        "outreach_sequencer",
        BulkCampaignOutput,
        CAMPAIGN_SYSTEM_PROMPT,
        user_prompt,
        tier=tier,
        llm=llm,
        audit=audit,
    )
    return result.model_dump()


# ── Agent 4: waitlist analyzer ───────────────────────────────────────


def wait_time_days(added_at: Any, now: datetime | None = None) -> int:
    added = _as_datetime(added_at)
    return ((now or _now()) - added).days


async def analyze_waitlist(
    entries: list[dict[str, Any]],
    provider_name: str,
    provider_specialty: str,
    *,
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> dict[str, Any]:
    """Rank a provider's waitlist.  ``ranking`` follows the model's order."""
    now = _now()
    patients = [
        {
            "waitlist_id": e["waitlist_id"],
            "patient_name": e["patient_name"],
            "chief_complaint": e.get("chief_complaint"),
            "reason": e.get("reason"),
            "preferred_timeframe": e.get("preferred_timeframe"),
            "provider_preference": e.get("provider_preference"),
            "requested_provider_id": e.get("requested_provider_id"),
            "added_at": e.get("added_at"),
            "wait_time_days": wait_time_days(e["added_at"], now),
        }
        for e in entries
    ]
    user_prompt = WAITLIST_USER_TEMPLATE.format(
        provider_name=provider_name,
        provider_specialty=provider_specialty,
        count=len(entries),
        patients_json=json.dumps(patients, indent=2, default=str),
    )

    result = await _run_agent(
        "waitlist_analyzer",
        WaitlistAnalysisOutput,
        WAITLIST_SYSTEM_PROMPT,
        user_prompt,
        tier=tier,
        llm=llm,
        audit=audit,
    )
    ranked = [
        {**patient.model_dump(), "ranking": index}
        for index, patient in enumerate(result.priority_patients, start=1)
    ]
    return {
        "total_patients": len(entries),
        "priority_patients": ranked,
        "summary": result.summary,
        "recommendations": result.recommendations,
    }


# ── Agent 5: daily briefing narrative ────────────────────────────────


async def write_daily_narrative(
    metrics: dict[str, Any],
    provider_name: str,
    day: date | str,
    weather_condition: str | None = None,
    weather_temp: float | None = None,
    top_waitlist: list[dict[str, Any]] | None = None,
    *,
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> dict[str, Any]:
    """Narrative part of the daily briefing, from precomputed metrics."""
    weather_line = (
        f"{weather_condition}, {weather_temp}°F" if weather_condition else "Clear conditions"
    )
    waitlist_section = ""
    if top_waitlist:
        lines = [
            f"- #{p['ranking']} {p['patient_name']} ({p['urgency_level']}): {p['chief_complaint']}"
            for p in top_waitlist
        ]
        waitlist_section = "\nTOP WAITLIST PATIENTS:\n" + "\n".join(lines) + "\n"

    patient_lines = "\n".join(
        f"{i}. {_as_datetime(p['scheduled_time']):%H:%M} - {p['patient_name']} "
        f"({p['appointment_type']}) - {p['chief_complaint']} [Risk: {p['risk_level']}]"
        for i, p in enumerate(metrics["patient_summaries"], start=1)
    ) or "(no appointments)"

    user_prompt = DAILY_SUMMARY_USER_TEMPLATE.format(
        provider_name=provider_name,
        date=_as_date(day).isoformat(),
        total_appointments=metrics["total_appointments"],
        new_patients=metrics["new_patients"],
        returning_patients=metrics["returning_patients"],
        waitlist_count=metrics["waitlist_count"],
        high_risk_count=metrics["high_risk_count"],
        medium_risk_count=metrics["medium_risk_count"],
        low_risk_count=metrics["low_risk_count"],
        virtual_eligible_count=metrics["virtual_eligible_count"],
        scheduled_hours=metrics["total_scheduled_hours"],
        utilization=metrics["utilization_percentage"],
        break_count=len(metrics["break_hours"]),
        weather_line=weather_line,
        waitlist_section=waitlist_section,
        patient_lines=patient_lines,
    )
    result = await _run_agent(
        "daily_summary",
        DailySummaryOutput,
        DAILY_SUMMARY_SYSTEM_PROMPT,
        user_prompt,
        tier=tier,
        llm=llm,
        audit=audit,
    )
    return result.model_dump()
