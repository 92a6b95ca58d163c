"""Next-day briefing for a provider, built as a LangGraph StateGraph.

Graph:

    metrics → (specialty known and waitlist non-empty?) → waitlist → narrative → END
            → (otherwise)                                          → narrative → END

  * **metrics**  : counts, schedule gaps, utilization and
                    the per-patient briefs.  No model call.
  * **waitlist** : runs the waitlist analyzer and keeps the top three.
                    Any failure is logged and the briefing carries on.
  * **narrative**: one structured model call for the executive summary,
                    key insights and recommendations.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

from langgraph.graph import END, StateGraph
from sqlalchemy.orm import Session
from typing_extensions import TypedDict

from clinic_pulse import crud
from clinic_pulse.agents import analyze_waitlist, write_daily_narrative
from clinic_pulse.config import DEFAULT_WEATHER_ZIP
from clinic_pulse.services.audit import AuditLogger
from clinic_pulse.services.llm import Tier

logger = logging.getLogger(__name__)

SLOT_MINUTES = 30
DEFAULT_AVAILABLE_HOURS = 8.0
TOP_WAITLIST_COUNT = 3


# ── State schema ─────────────────────────────────────────────────────


class BriefingState(TypedDict, total=False):
    """Data flowing through the briefing graph.

    Inputs are ``provider``, ``day``, ``appointments``, ``waitlist`` and
    ``weather``; each node adds its own output key.
    """

    provider: dict[str, Any]
    day: str
    appointments: list[dict[str, Any]]
    waitlist: list[dict[str, Any]]
    weather: dict[str, Any] | None
    metrics: dict[str, Any]
    top_waitlist: list[dict[str, Any]] | None
    narrative: dict[str, Any]


# ── Deterministic metrics ────────────────────────────────────────────


def _scheduled(appt: dict[str, Any]) -> datetime:
    value = appt["scheduled_time"]
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace(" ", "T"))


def find_breaks(appointments: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Gaps of at least one slot between consecutive appointments.

    Each appointment is assumed to last one 30-minute slot; a gap runs
    from the end of one slot to the start of the next appointment.
    """
    starts = sorted(_scheduled(a) for a in appointments)
    slot = timedelta(minutes=SLOT_MINUTES)
    breaks = []
    for current, following in zip(starts, starts[1:]):
        end = current + slot
        gap_minutes = (following - end).total_seconds() / 60
        if gap_minutes >= SLOT_MINUTES:
            breaks.append(
                {"start_time": end, "end_time": following, "duration_mins": gap_minutes}
            )
    return breaks


def compute_day_metrics(
    appointments: list[dict[str, Any]], waitlist_count: int,
) -> dict[str, Any]:
    """Counts, utilization and patient briefs for one provider-day."""
    total = len(appointments)
    badges = [a.get("risk_badge") for a in appointments]
    high = badges.count("High")

    starts = sorted(_scheduled(a) for a in appointments)
    scheduled_hours = total * SLOT_MINUTES / 60
    if starts:
        workday = (starts[-1] - starts[0]) + timedelta(minutes=SLOT_MINUTES)
        available_hours = workday.total_seconds() / 3600
    else:
        available_hours = DEFAULT_AVAILABLE_HOURS
    utilization = scheduled_hours / available_hours * 100 if available_hours > 0 else 0.0

    summaries = [
        {
            "patient_name": a.get("patient_name"),
            "scheduled_time": a["scheduled_time"],
            "appointment_type": a.get("appointment_type"),
            "chief_complaint": a.get("chief_complaint"),
            "risk_level": a.get("risk_badge") or "Unknown",
            # Seed data has no new-patient visit type
            "is_new_patient": False,
            "virtual_eligible": bool(a.get("virtual_eligible")),
        }
        for a in appointments
    ]

    return {
        "total_appointments": total,
        "new_patients": 0,
        "returning_patients": total,
        "waitlist_count": waitlist_count,
        "high_risk_patients": high,
        "new_patient_opportunities": high,
        "total_scheduled_hours": scheduled_hours,
        "total_available_hours": available_hours,
        "utilization_percentage": utilization,
        "break_hours": find_breaks(appointments),
        "low_risk_count": badges.count("Low"),
        "medium_risk_count": badges.count("Medium"),
        "high_risk_count": high,
        "virtual_eligible_count": sum(1 for a in appointments if a.get("virtual_eligible")),
        "patient_summaries": summaries,
    }


# ── Nodes ────────────────────────────────────────────────────────────


def _metrics_node(state: BriefingState) -> dict:
    metrics = compute_day_metrics(state["appointments"], len(state.get("waitlist") or []))
    logger.debug(
        "Briefing metrics for %s on %s: %d appointments, %.0f%% utilization",
        state["provider"]["provider_id"], state["day"],
        metrics["total_appointments"], metrics["utilization_percentage"],
    )
    return {"metrics": metrics}


def _make_waitlist_node(tier: Tier, llm: Any | None, audit: AuditLogger | None):
    async def waitlist_node(state: BriefingState) -> dict:
        provider = state["provider"]
        try:
            analysis = await analyze_waitlist(
                state["waitlist"], provider["name"], provider["specialty"],
                tier=tier, llm=llm, audit=audit,
            )
        except Exception:
            logger.exception(
                "Waitlist analysis failed for briefing (%s); continuing without it",
                provider["provider_id"],
            )
            return {"top_waitlist": None}
        return {"top_waitlist": analysis["priority_patients"][:TOP_WAITLIST_COUNT]}

    return waitlist_node


def _make_narrative_node(tier: Tier, llm: Any | None, audit: AuditLogger | None):
    async def narrative_node(state: BriefingState) -> dict:
        weather = state.get("weather")
        narrative = await write_daily_narrative(
            state["metrics"],
            state["provider"]["name"],
            state["day"],
            weather_condition=weather.get("condition") if weather else None,
            weather_temp=weather.get("temperature_f") if weather else None,
            top_waitlist=state.get("top_waitlist"),
            tier=tier,
            llm=llm,
            audit=audit,
        )
        return {"narrative": narrative}

    return narrative_node


def route_after_metrics(state: BriefingState) -> str:
    """Only analyze the waitlist when there is one and the specialty is known."""
    if state["provider"].get("specialty") and state.get("waitlist"):
        return "waitlist"
    return "narrative"


# ── Graph assembly ───────────────────────────────────────────────────


def create_briefing_graph(
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
):
    """Build and compile the briefing graph.

    Invoke with ``await graph.ainvoke({"provider": ..., "day": ...,
    "appointments": [...], "waitlist": [...], "weather": ...})``.
    """
    graph = StateGraph(BriefingState)

    graph.add_node("metrics", _metrics_node)
    graph.add_node("waitlist", _make_waitlist_node(tier, llm, audit))
    graph.add_node("narrative", _make_narrative_node(tier, llm, audit))

    graph.set_entry_point("metrics")
    graph.add_conditional_edges(
        "metrics",
        route_after_metrics,
        {"waitlist": "waitlist", "narrative": "narrative"},
    )
    graph.add_edge("waitlist", "narrative")
    graph.add_edge("narrative", END)

    return graph.compile()


async def generate_daily_summary(
    db: Session,
    day: date,
    provider_id: str,
    *,
    tier: Tier = "fast",
    llm: Any | None = None,
    audit: AuditLogger | None = None,
) -> dict[str, Any]:
    """Load a provider-day from the database and produce its briefing.

    Raises ``crud.NotFoundError`` for an unknown provider.
    """
    provider = crud.get_provider(db, provider_id)
    if provider is None:
        raise crud.NotFoundError(f"Provider {provider_id} not found")

    state = await create_briefing_graph(tier, llm, audit).ainvoke(
        {
            "provider": provider,
            "day": day.isoformat(),
            "appointments": crud.get_appointments(db, day=day, provider_id=provider_id),
            "waitlist": crud.get_waitlist(db, provider_id=provider_id),
            "weather": crud.get_weather(db, day, DEFAULT_WEATHER_ZIP),
        }
    )
    return {
        **state["metrics"],
        "top_waitlist_matches": state.get("top_waitlist"),
        **state["narrative"],
    }
