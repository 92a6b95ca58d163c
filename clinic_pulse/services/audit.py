"""Audit trail for model calls.

Records latency, token counts and an estimated USD cost for every call an
agent makes, in the ``agent_audit_logs`` table.

Design
------
* ``track()`` wraps a single model call.  It times the call and writes a
  ``success`` row with the usage the agent reports, or an ``error`` row
  with zero tokens and zero cost before re-raising the original error.
* Audit writes use their own short-lived session so a failing write can
  never roll back or poison the caller's transaction.
* A failed audit write is logged and dropped; it never replaces the agent
  result or the agent's own exception.

Usage
-----
>>> async with audit_logger.track("risk_scorer", model, appointment_id="A0001") as call:
...     parsed, call.usage = await invoke_structured(...)
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from clinic_pulse import crud
from clinic_pulse.services.llm import TokenUsage, estimate_cost

logger = logging.getLogger(__name__)

AGENT_TYPES = (
    "risk_scorer",
    "virtual_eligibility",
    "outreach_sequencer",
    "waitlist_matcher",
    "daily_summary",
    "waitlist_analyzer",
)


def generate_request_id() -> str:
    """``req_<epoch-ms>_<9 random chars>``."""
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class TrackedCall:
    """Handle yielded by ``AuditLogger.track``; the agent fills in ``usage``."""

    request_id: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class AuditLogger:
    """Writes one audit row per model call."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory

    def _get_session(self) -> Session:
        if self._session_factory is None:
            from clinic_pulse.database import SessionLocal  # noqa: PLC0415

            self._session_factory = SessionLocal
        return self._session_factory()

    # ── Public API ────────────────────────────────────────────────────

    def record_success(
        self,
        request_id: str,
        agent_type: str,
        model: str,
        latency_ms: float,
        usage: TokenUsage,
        *,
        appointment_id: str | None = None,
        patient_id: str | None = None,
    ) -> bool:
        """Record a successful model call.  Returns ``True`` if written."""
        return self._write(
            {
                "request_id": request_id,
                "agent_type": agent_type,
                "latency_ms": latency_ms,
                "model": model,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "total_tokens": usage.total_tokens,
                "estimated_cost_usd": estimate_cost(
                    model, usage.input_tokens, usage.output_tokens,
                ),
                "status": "success",
                "appointment_id": appointment_id,
                "patient_id": patient_id,
            }
        )

    def record_failure(
        self,
        request_id: str,
        agent_type: str,
        model: str,
        latency_ms: float,
        error: BaseException | str,
        *,
        appointment_id: str | None = None,
        patient_id: str | None = None,
    ) -> bool:
        """Record a failed model call with zero tokens and zero cost."""
        return self._write(
            {
                "request_id": request_id,
                "agent_type": agent_type,
                "latency_ms": latency_ms,
                "model": model,
                "input_tokens": 0,
                "output_tokens": 0,
                "total_tokens": 0,
                "estimated_cost_usd": 0.0,
                "status": "error",
                "error_message": str(error),
                "appointment_id": appointment_id,
                "patient_id": patient_id,
            }
        )

    @asynccontextmanager
    async def track(
        self,
        agent_type: str,
        model: str,
        **context: Any,
    ) -> AsyncIterator[TrackedCall]:
        """Time the wrapped model call and audit its outcome."""
        call = TrackedCall(request_id=generate_request_id())
        t0 = time.perf_counter()
        try:
            yield call
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            self.record_failure(call.request_id, agent_type, model, elapsed, exc, **context)
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        logger.debug(
            "%s call %s finished in %.0fms (%d tokens)",
            agent_type, call.request_id, elapsed, call.usage.total_tokens,
        )
        self.record_success(call.request_id, agent_type, model, elapsed, call.usage, **context)

    # ── Internal ──────────────────────────────────────────────────────

    def _write(self, data: dict[str, Any]) -> bool:
        try:
            db = self._get_session()
            try:
                crud.save_audit_log(db, data)
            finally:
                db.close()
        except Exception:
            logger.exception(
                "Failed to write audit log for %s (%s)",
                data.get("agent_type"), data.get("request_id"),
            )
            return False
        return True


# ── Module-level singleton ──────────────────────────────────────────
audit_logger = AuditLogger()
