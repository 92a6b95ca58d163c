"""FastAPI routes that run the model-backed agents."""

from __future__ import annotations

import datetime as dt
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from clinic_pulse import crud
from clinic_pulse.agents import analyze_waitlist, assess_virtual_eligibility, generate_bulk_campaigns
from clinic_pulse.api.schemas import (
    CampaignRequest,
    DailySummaryRequest,
    GenerateRiskRequest,
    GenerateRiskResponse,
    VirtualEligibilityRequest,
    WaitlistAnalysisRequest,
)
from clinic_pulse.briefing import generate_daily_summary
from clinic_pulse.config import DEFAULT_WEATHER_ZIP
from clinic_pulse.database import get_db
from clinic_pulse.services.audit import AuditLogger
from clinic_pulse.services.scoring import (
    ScoringProgress,
    progress_key,
    prune_progress,
    score_appointments,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_progress_registry(request: Request) -> dict[str, ScoringProgress]:
    """Registry of risk generation runs, created in the server lifespan."""
    registry = getattr(request.app.state, "scoring_progress", None)
    if registry is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return registry


def _get_audit(request: Request) -> AuditLogger | None:
    return getattr(request.app.state, "audit_logger", None)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "?")


def _require_provider(db: Session, provider_id: str) -> dict:
    provider = crud.get_provider(db, provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider


# ── Bulk risk generation ─────────────────────────────────────────────


@router.post("/risk-assessments/generate", response_model=GenerateRiskResponse)
async def generate_risk_assessments(
    body: GenerateRiskRequest, request: Request, db: Session = Depends(get_db),
):
    """Score every appointment of a day (optionally one provider's).

    Progress can be polled at ``/api/risk-assessments/progress`` while the
    run is in flight.
    """
    registry = _get_progress_registry(request)
    request_id = _request_id(request)

    try:
        appointments = crud.get_appointments(db, day=body.date, provider_id=body.provider_id)
        progress = ScoringProgress(total=len(appointments))
        prune_progress(registry)
        registry[progress_key(body.date, body.provider_id)] = progress

        logger.info(
            "[%s] Generating risk for %d appointments (%s, %s, %s tier)",
            request_id, len(appointments), body.date, body.provider_id or "all", body.model,
        )
        results = await score_appointments(
            db, appointments, tier=body.model, progress=progress, audit=_get_audit(request),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("[%s] Error generating risk assessments", request_id)
        raise HTTPException(
            status_code=500, detail="Failed to generate risk assessments",
        ) from e

    return GenerateRiskResponse(
        date=body.date,
        provider_id=body.provider_id,
        total=progress.total,
        succeeded=progress.succeeded,
        failed=progress.failed,
        results=results,
    )


@router.get("/risk-assessments/progress")
async def risk_generation_progress(
    request: Request,
    day: dt.date = Query(..., alias="date"),
    provider_id: str | None = None,
):
    progress = _get_progress_registry(request).get(progress_key(day, provider_id))
    if progress is None:
        raise HTTPException(status_code=404, detail="No risk generation run found")
    return progress.as_dict()


# ── Outreach campaigns ───────────────────────────────────────────────


@router.post("/agents/campaigns")
async def create_campaigns(
    body: CampaignRequest, request: Request, db: Session = Depends(get_db),
):
    """Outreach copy for every risk category of a provider-day."""
    request_id = _request_id(request)
    provider = _require_provider(db, body.provider_id)

    try:
        weather = crud.get_weather(db, body.date, DEFAULT_WEATHER_ZIP)
        result = await generate_bulk_campaigns(
            body.date,
            provider["name"],
            weather["condition"] if weather else None,
            weather["temperature_f"] if weather else None,
            tier=body.model,
            audit=_get_audit(request),
        )
    except Exception as e:
        logger.exception("[%s] Error generating campaigns", request_id)
        raise HTTPException(status_code=500, detail="Failed to generate campaigns") from e

    return {"date": body.date, "provider_id": body.provider_id, **result}


# ── Waitlist analysis ────────────────────────────────────────────────


@router.post("/agents/waitlist-analysis")
async def waitlist_analysis(
    body: WaitlistAnalysisRequest, request: Request, db: Session = Depends(get_db),
):
    request_id = _request_id(request)
    provider = _require_provider(db, body.provider_id)

    entries = crud.get_waitlist(db, provider_id=body.provider_id)
    if not entries:
        raise HTTPException(status_code=400, detail="No patients on the waitlist")

    try:
        return await analyze_waitlist(
            entries,
            provider["name"],
            provider["specialty"],
            tier=body.model,
            audit=_get_audit(request),
        )
    except Exception as e:
        logger.exception("[%s] Error analyzing waitlist", request_id)
        raise HTTPException(status_code=500, detail="Failed to analyze waitlist") from e


# ── Daily briefing ───────────────────────────────────────────────────


@router.post("/agents/daily-summary")
async def daily_summary(
    body: DailySummaryRequest, request: Request, db: Session = Depends(get_db),
):
    request_id = _request_id(request)
    try:
        return await generate_daily_summary(
            db, body.date, body.provider_id, tier=body.model, audit=_get_audit(request),
        )
    except crud.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.exception("[%s] Error generating daily summary", request_id)
        raise HTTPException(status_code=500, detail="Failed to generate daily summary") from e


# ── Virtual eligibility ──────────────────────────────────────────────


@router.post("/agents/virtual-eligibility/{appointment_id}")
async def virtual_eligibility(
    appointment_id: str,
    request: Request,
    body: VirtualEligibilityRequest | None = None,
    db: Session = Depends(get_db),
):
    """Re-assess one appointment's virtual eligibility (not persisted)."""
    request_id = _request_id(request)
    tier = body.model if body else "fast"

    appointment = crud.get_appointment_details(db, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")

    try:
        patient = crud.get_patient_with_history(db, appointment["patient_id"])
        weather = crud.get_weather(
            db, appointment["scheduled_time"].date(), appointment["zip_code"],
        )
        result = await assess_virtual_eligibility(
            appointment, patient, weather, tier=tier, audit=_get_audit(request),
        )
    except Exception as e:
        logger.exception("[%s] Error assessing virtual eligibility", request_id)
        raise HTTPException(
            status_code=500, detail="Failed to assess virtual eligibility",
        ) from e

    return {"appointment_id": appointment_id, **result}
