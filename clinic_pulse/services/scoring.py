"""Bulk risk generation for a provider-day.

Every appointment is scored in its own task (``asyncio.gather``): risk
scorer first, then virtual eligibility, then one upsert of the combined
assessment.  A failing appointment is reported in its own result and never
cancels the others.

Database calls are synchronous and run on the event-loop thread between
awaits, so tasks sharing one session never interleave inside a write.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from clinic_pulse import crud
from clinic_pulse.agents import assess_virtual_eligibility, generate_risk_score
from clinic_pulse.config import PROGRESS_TTL_SECONDS
from clinic_pulse.services.audit import AuditLogger
from clinic_pulse.services.llm import Tier, model_for_tier

logger = logging.getLogger(__name__)


@dataclass
class ScoringProgress:
    """Shared counter polled by the dashboard while a run is in flight."""

    total: int = 0
    current: int = 0
    succeeded: int = 0
    failed: int = 0
    # monotonic clock reading of the last change
    updated_at: float = field(default_factory=time.monotonic, repr=False)

    def record(self, success: bool) -> None:
        self.current += 1
        if success:
            self.succeeded += 1
        else:
            self.failed += 1
        self.updated_at = time.monotonic()

    @property
    def done(self) -> bool:
        return self.current >= self.total

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "current": self.current,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "done": self.done,
        }


def progress_key(day: date | str, provider_id: str | None) -> str:
    """Registry key for a run: ``<date>:<provider_id>``."""
    day_str = day.isoformat() if isinstance(day, date) else str(day)
    return f"{day_str}:{provider_id or 'all'}"


def prune_progress(
    registry: dict[str, ScoringProgress],
    max_age_seconds: float = PROGRESS_TTL_SECONDS,
    now: float | None = None,
) -> int:
    """Drop finished runs that have been idle for longer than *max_age_seconds*.

    Runs still in flight are never dropped.  Returns the number removed.
    """
    now = time.monotonic() if now is None else now
    stale = [
        key for key, progress in registry.items()
        if progress.done and now - progress.updated_at > max_age_seconds
    ]
    for key in stale:
        del registry[key]
    return len(stale)


def _appointment_day(appt: dict[str, Any]) -> date:
    value = appt["scheduled_time"]
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


async def _score_one(
    db: Session,
    appt: dict[str, Any],
    *,
    tier: Tier,
    progress: ScoringProgress,
    llm: Any | None,
    audit: AuditLogger | None,
) -> dict[str, Any]:
    appointment_id = appt["appointment_id"]
    try:
        patient = crud.get_patient_with_history(db, appt["patient_id"])
        if patient is None:
            raise crud.NotFoundError(f"Patient {appt['patient_id']} not found")
        weather = crud.get_weather(db, _appointment_day(appt), patient["zip_code"])

        risk = await generate_risk_score(
            patient, appt, patient["history"], weather, tier=tier, llm=llm, audit=audit,
        )
        virtual = await assess_virtual_eligibility(
            appt, patient, weather, tier=tier, llm=llm, audit=audit,
        )

        crud.save_risk_assessment(
            db,
            {
                **risk,
                "appointment_id": appointment_id,
                "virtual_eligible": virtual["virtual_eligible"],
                "virtual_reason": virtual["virtual_reason"],
                "virtual_confidence": virtual["confidence"],
                "model_version": model_for_tier(tier),
            },
        )
    except Exception as exc:
        logger.warning("Risk generation failed for %s: %s", appointment_id, exc)
        progress.record(False)
        return {"appointment_id": appointment_id, "success": False, "error": str(exc)}

    progress.record(True)
    logger.debug(
        "Scored %s (%d/%d): %s", appointment_id, progress.current, progress.total,
        risk["risk_badge"],
    )
    return {
        "appointment_id": appointment_id,
        "success": True,
        "risk_score": risk["risk_score"],
        "risk_badge": risk["risk_badge"],
        "virtual_eligible": virtual["virtual_eligible"],
    }


async def score_appointments(
    db: Session,
    appointments: list[dict[str, Any]],
    *,
    tier: Tier = "fast",
    progress: ScoringProgress | None = None,
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> list[dict[str, Any]]:
    """Score every appointment concurrently; one result dict per input."""
    if progress is None:
        progress = ScoringProgress()
    progress.total = len(appointments)

    results = await asyncio.gather(
        *(
            _score_one(db, appt, tier=tier, progress=progress, llm=llm, audit=audit)
            for appt in appointments
        )
    )
    logger.info(
        "Risk generation finished: %d succeeded, %d failed",
        progress.succeeded, progress.failed,
    )
    return list(results)
