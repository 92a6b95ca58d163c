"""FastAPI routes for the dashboard's data endpoints.

These are plain ``def`` endpoints: the database layer is synchronous, so
FastAPI runs each one in its thread pool.
"""

from __future__ import annotations

import datetime as dt
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from clinic_pulse import crud
from clinic_pulse.api.schemas import (
    AssignSlotRequest,
    AuditLogIn,
    HealthResponse,
    RiskAssessmentIn,
    WriteResponse,
)
from clinic_pulse.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "?")


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Providers & appointments ─────────────────────────────────────────


@router.get("/providers")
def list_providers(request: Request, db: Session = Depends(get_db)):
    try:
        return crud.get_providers(db)
    except Exception as e:
        logger.exception("[%s] Error fetching providers", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch providers") from e


@router.get("/appointments")
def list_appointments(
    request: Request,
    day: dt.date | None = Query(None, alias="date"),
    provider_id: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
):
    """Appointments with patient, provider and risk fields, by scheduled time."""
    try:
        return crud.get_appointments(db, day=day, provider_id=provider_id, status=status)
    except Exception as e:
        logger.exception("[%s] Error fetching appointments", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch appointments") from e


@router.get("/appointments/{appointment_id}/details")
def appointment_details(appointment_id: str, request: Request, db: Session = Depends(get_db)):
    try:
        details = crud.get_appointment_details(db, appointment_id)
    except Exception as e:
        logger.exception("[%s] Error fetching appointment %s", _request_id(request), appointment_id)
        raise HTTPException(
            status_code=500, detail="Failed to fetch appointment details",
        ) from e
    if details is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return details


@router.get("/kpis")
def kpis(
    request: Request,
    day: dt.date | None = Query(None, alias="date"),
    provider_id: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        return crud.get_kpis(db, day=day, provider_id=provider_id)
    except Exception as e:
        logger.exception("[%s] Error fetching KPIs", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch KPIs") from e


# ── Risk assessments ─────────────────────────────────────────────────


@router.get("/risk-assessments/{appointment_id}")
def get_risk_assessment(appointment_id: str, request: Request, db: Session = Depends(get_db)):
    """The stored assessment, or ``null`` when the appointment has none yet."""
    try:
        return crud.get_risk_assessment(db, appointment_id)
    except Exception as e:
        logger.exception("[%s] Error fetching risk assessment", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch risk assessment") from e


@router.post("/risk-assessments", response_model=WriteResponse)
def save_risk_assessment(
    body: RiskAssessmentIn, request: Request, db: Session = Depends(get_db),
):
    try:
        changes = crud.save_risk_assessment(db, body.model_dump())
    except Exception as e:
        logger.exception(
            "[%s] Error saving risk assessment for %s", _request_id(request), body.appointment_id,
        )
        raise HTTPException(status_code=500, detail="Failed to save risk assessment") from e
    return WriteResponse(success=True, changes=changes)


# ── Waitlist ─────────────────────────────────────────────────────────


@router.get("/waitlist")
def list_waitlist(
    request: Request, provider_id: str | None = None, db: Session = Depends(get_db),
):
    try:
        return crud.get_waitlist(db, provider_id=provider_id)
    except Exception as e:
        logger.exception("[%s] Error fetching waitlist", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch waitlist") from e


@router.post("/waitlist/assign-slot")
def assign_slot(body: AssignSlotRequest, request: Request, db: Session = Depends(get_db)):
    """Give an open slot to a waitlist patient."""
    if not body.waitlist_id or not body.appointment_id:
        raise HTTPException(
            status_code=400, detail="waitlist_id and appointment_id are required",
        )
    try:
        result = crud.assign_waitlist_to_slot(db, body.waitlist_id, body.appointment_id)
    except crud.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.exception("[%s] Error assigning waitlist slot", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to assign waitlist patient") from e
    return {"success": True, **result}


# ── Patients & weather ───────────────────────────────────────────────


@router.get("/patients/{patient_id}")
def get_patient(patient_id: str, request: Request, db: Session = Depends(get_db)):
    try:
        patient = crud.get_patient_with_history(db, patient_id)
    except Exception as e:
        logger.exception("[%s] Error fetching patient %s", _request_id(request), patient_id)
        raise HTTPException(status_code=500, detail="Failed to fetch patient") from e
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient


@router.get("/weather")
def get_weather(
    request: Request,
    day: dt.date = Query(..., alias="date"),
    zip_code: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Forecast for a day and zip code, or ``null`` when there is none."""
    try:
        return crud.get_weather(db, day, zip_code)
    except Exception as e:
        logger.exception("[%s] Error fetching weather", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch weather") from e


# ── Audit logs ───────────────────────────────────────────────────────


@router.post("/audit-logs", response_model=WriteResponse)
def create_audit_log(body: AuditLogIn, request: Request, db: Session = Depends(get_db)):
    try:
        changes = crud.save_audit_log(db, body.model_dump())
    except Exception as e:
        logger.exception("[%s] Error saving audit log", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to save audit log") from e
    return WriteResponse(success=True, changes=changes)


@router.get("/audit-logs")
def list_audit_logs(
    request: Request,
    agent_type: str | None = None,
    status: str | None = None,
    limit: int = Query(crud.DEFAULT_AUDIT_LIMIT, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    try:
        return crud.get_audit_logs(db, agent_type=agent_type, status=status, limit=limit)
    except Exception as e:
        logger.exception("[%s] Error fetching audit logs", _request_id(request))
        raise HTTPException(status_code=500, detail="Failed to fetch audit logs") from e
