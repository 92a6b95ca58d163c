"""Data access for the dashboard.

Every function takes an open ``Session`` and returns plain dicts (or
lists of dicts) shaped the way the HTTP API serves them, so routes can
return them directly.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clinic_pulse.config import FAST_MODEL_NAME
from clinic_pulse.models import (
    Appointment,
    AuditLogEntry,
    Patient,
    Provider,
    RiskAssessment,
    WaitlistEntry,
    WeatherRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LIMIT = 100

# Risk columns joined onto appointment listings
_RISK_LIST_FIELDS = (
    "risk_score",
    "risk_badge",
    "primary_risk_factor",
    "secondary_risk_factor",
    "contributing_factors",
    "predicted_show_probability",
    "weather_condition",
    "weather_impact_score",
    "virtual_eligible",
    "virtual_reason",
)

_HISTORY_FIELDS = (
    "total_appointments",
    "completed",
    "no_shows",
    "no_show_rate",
    "last_appointment_date",
    "recent_reschedules",
)


class NotFoundError(LookupError):
    """Raised when a referenced row does not exist."""


# ── Helpers ──────────────────────────────────────────────────────────


def to_dict(obj: Any) -> dict[str, Any]:
    """Column values of an ORM instance as a dict."""
    return {col.name: getattr(obj, col.name) for col in obj.__table__.columns}


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _scheduled_on(stmt, day: date | None):
    if day is None:
        return stmt
    start, end = _day_bounds(day)
    return stmt.where(Appointment.scheduled_time >= start, Appointment.scheduled_time < end)


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


# ── Providers ────────────────────────────────────────────────────────


def get_providers(db: Session) -> list[dict[str, Any]]:
    rows = db.scalars(select(Provider).order_by(Provider.name)).all()
    return [to_dict(p) for p in rows]


def get_provider(db: Session, provider_id: str) -> dict[str, Any] | None:
    provider = db.get(Provider, provider_id)
    return to_dict(provider) if provider else None


# ── Appointments ─────────────────────────────────────────────────────


def get_appointments(
    db: Session,
    *,
    day: date | None = None,
    provider_id: str | None = None,
    status: str | None = None,
) -> list[dict[str, Any]]:
    """List appointments with patient, provider and risk fields joined in."""
    stmt = (
        select(Appointment, Patient, Provider, RiskAssessment)
        .join(Patient, Appointment.patient_id == Patient.patient_id)
        .join(Provider, Appointment.provider_id == Provider.provider_id)
        .outerjoin(RiskAssessment, Appointment.appointment_id == RiskAssessment.appointment_id)
    )
    stmt = _scheduled_on(stmt, day)
    if provider_id:
        stmt = stmt.where(Appointment.provider_id == provider_id)
    if status:
        stmt = stmt.where(Appointment.status == status)
    stmt = stmt.order_by(Appointment.scheduled_time)

    results = []
    for appt, patient, provider, risk in db.execute(stmt).all():
        row = to_dict(appt)
        row["patient_name"] = patient.name
        row["commute_type"] = patient.commute_type
        row["provider_name"] = provider.name
        for field in _RISK_LIST_FIELDS:
            row[field] = getattr(risk, field) if risk else None
        results.append(row)
    return results


def get_appointment_details(db: Session, appointment_id: str) -> dict[str, Any] | None:
    """Single appointment with everything the detail view shows, or ``None``."""
    appt = db.get(Appointment, appointment_id)
    if appt is None:
        return None

    patient, provider, risk = appt.patient, appt.provider, appt.risk_assessment
    history = patient.history if patient else None

    row = to_dict(appt)
    row.update(
        patient_name=patient.name,
        age=patient.age,
        distance_miles=patient.distance_miles,
        zip_code=patient.zip_code,
        phone=patient.phone,
        email=patient.email,
        commute_type=patient.commute_type,
        preferred_virtual=patient.preferred_virtual,
        provider_name=provider.name,
        provider_specialty=provider.specialty,
    )
    for field in ("assessment_id", *_RISK_LIST_FIELDS, "virtual_confidence"):
        row[field] = getattr(risk, field) if risk else None
    for field in _HISTORY_FIELDS:
        row[field] = getattr(history, field) if history else None
    return row


# ── KPIs ─────────────────────────────────────────────────────────────


def get_kpis(
    db: Session,
    *,
    day: date | None = None,
    provider_id: str | None = None,
) -> dict[str, int]:
    """Headline counts for the dashboard header.

    The waitlist count is filtered by provider only: waitlist entries are
    not tied to a date.
    """
    total_stmt = select(func.count()).select_from(Appointment).where(
        Appointment.status == "scheduled",
    )
    high_stmt = (
        select(func.count())
        .select_from(RiskAssessment)
        .join(Appointment, RiskAssessment.appointment_id == Appointment.appointment_id)
        .where(RiskAssessment.risk_badge == "High", Appointment.status == "scheduled")
    )
    total_stmt = _scheduled_on(total_stmt, day)
    high_stmt = _scheduled_on(high_stmt, day)
    if provider_id:
        total_stmt = total_stmt.where(Appointment.provider_id == provider_id)
        high_stmt = high_stmt.where(Appointment.provider_id == provider_id)

    waitlist_stmt = select(func.count()).select_from(WaitlistEntry).where(
        WaitlistEntry.status == "waiting",
    )
    if provider_id:
        waitlist_stmt = waitlist_stmt.where(WaitlistEntry.requested_provider_id == provider_id)

    return {
        "total_appointments": db.scalar(total_stmt) or 0,
        "high_risk_patients": db.scalar(high_stmt) or 0,
        "waitlist_count": db.scalar(waitlist_stmt) or 0,
    }


# ── Risk assessments ─────────────────────────────────────────────────


def get_risk_assessment(db: Session, appointment_id: str) -> dict[str, Any] | None:
    risk = db.scalar(
        select(RiskAssessment).where(RiskAssessment.appointment_id == appointment_id),
    )
    return to_dict(risk) if risk else None


def save_risk_assessment(db: Session, data: dict[str, Any]) -> int:
    """Insert or replace the assessment for ``data["appointment_id"]``.

    Returns the number of rows written (always 1), mirroring the
    ``changes`` count the dashboard expects.
    """
    appointment_id = data["appointment_id"]
    risk = db.scalar(
        select(RiskAssessment).where(RiskAssessment.appointment_id == appointment_id),
    )
    if risk is None:
        risk = RiskAssessment(
            assessment_id=data.get("assessment_id") or f"ASSESS_{appointment_id}",
            appointment_id=appointment_id,
        )
        db.add(risk)

    risk.risk_score = data.get("risk_score")
    risk.risk_badge = data.get("risk_badge")
    risk.primary_risk_factor = data.get("primary_risk_factor")
    risk.secondary_risk_factor = data.get("secondary_risk_factor")
    risk.contributing_factors = list(data.get("contributing_factors") or [])
    risk.predicted_show_probability = data.get("predicted_show_probability")
    risk.weather_condition = data.get("weather_condition")
    risk.weather_impact_score = data.get("weather_impact_score") or 0
    risk.virtual_eligible = bool(data.get("virtual_eligible"))
    risk.virtual_reason = data.get("virtual_reason")
    risk.virtual_confidence = data.get("virtual_confidence")
    risk.model_version = data.get("model_version") or FAST_MODEL_NAME

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return 1


# ── Waitlist ─────────────────────────────────────────────────────────


def get_waitlist(db: Session, *, provider_id: str | None = None) -> list[dict[str, Any]]:
    """Waiting entries, longest-waiting first."""
    stmt = select(WaitlistEntry).where(WaitlistEntry.status == "waiting")
    if provider_id:
        stmt = stmt.where(WaitlistEntry.requested_provider_id == provider_id)
    stmt = stmt.order_by(WaitlistEntry.added_at.asc())
    return [to_dict(w) for w in db.scalars(stmt).all()]


def assign_waitlist_to_slot(
    db: Session, waitlist_id: str, appointment_id: str,
) -> dict[str, Any]:
    """Give an appointment slot to a waitlist patient.

    Both writes (appointment confirmed with the entry's complaint, entry
    marked filled) are committed together or not at all.
    """
    entry = db.get(WaitlistEntry, waitlist_id)
    if entry is None:
        raise NotFoundError(f"Waitlist patient {waitlist_id} not found")
    appt = db.get(Appointment, appointment_id)
    if appt is None:
        raise NotFoundError(f"Appointment {appointment_id} not found")

    try:
        appt.status = "confirmed"
        appt.chief_complaint = entry.chief_complaint

        entry.status = "filled"
        entry.filled_appointment_id = appointment_id
        entry.filled_at = _utcnow()

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Assigned waitlist %s to appointment %s", waitlist_id, appointment_id)
    return {
        "appointment_id": appointment_id,
        "waitlist_id": waitlist_id,
        "patient_name": entry.patient_name,
        "scheduled_time": appt.scheduled_time,
        "message": f"Successfully assigned {entry.patient_name} to appointment slot",
    }


# ── Patients & weather ───────────────────────────────────────────────


def get_patient_with_history(db: Session, patient_id: str) -> dict[str, Any] | None:
    patient = db.get(Patient, patient_id)
    if patient is None:
        return None
    row = to_dict(patient)
    row["history"] = to_dict(patient.history) if patient.history else None
    return row


def get_weather(db: Session, day: date, zip_code: str) -> dict[str, Any] | None:
    record = db.scalar(
        select(WeatherRecord).where(
            WeatherRecord.date == day, WeatherRecord.zip_code == zip_code,
        ),
    )
    return to_dict(record) if record else None


# ── Audit logs ───────────────────────────────────────────────────────


def new_log_id() -> str:
    return f"log_{int(datetime.now().timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def save_audit_log(db: Session, data: dict[str, Any]) -> int:
    """Persist one audit row.  Returns the number of rows written."""
    entry = AuditLogEntry(
        log_id=data.get("log_id") or new_log_id(),
        request_id=data["request_id"],
        agent_type=data["agent_type"],
        timestamp=_parse_datetime(data.get("timestamp")) or _utcnow(),
        latency_ms=data.get("latency_ms") or 0,
        model=data.get("model"),
        input_tokens=data.get("input_tokens") or 0,
        output_tokens=data.get("output_tokens") or 0,
        total_tokens=data.get("total_tokens") or 0,
        estimated_cost_usd=data.get("estimated_cost_usd") or 0.0,
        status=data["status"],
        error_message=data.get("error_message"),
        appointment_id=data.get("appointment_id"),
        patient_id=data.get("patient_id"),
    )
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return 1


def get_audit_logs(
    db: Session,
    *,
    agent_type: str | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Most recent audit rows first; 100 when no limit is given."""
    stmt = select(AuditLogEntry)
    if agent_type:
        stmt = stmt.where(AuditLogEntry.agent_type == agent_type)
    if status:
        stmt = stmt.where(AuditLogEntry.status == status)
    stmt = stmt.order_by(AuditLogEntry.timestamp.desc()).limit(limit or DEFAULT_AUDIT_LIMIT)
    return [to_dict(row) for row in db.scalars(stmt).all()]
