"""Clinic Pulse, a scheduling dashboard backend for an outpatient clinic.

Architecture Overview
=====================

A thin FastAPI layer over a relational store (SQLAlchemy), plus five
model-backed agents that each produce one structured answer per call:

1. **risk_scorer**: no-show risk score, badge and risk factors for an
   appointment, given patient history, lead time, distance and weather.
2. **virtual_eligibility**: can the visit be done by video, and why.
3. **outreach_sequencer**: SMS / email / portal copy for every risk
   category of a day.
4. **waitlist_analyzer**: ranks a provider's waitlist by urgency.
5. **daily_summary**: a provider's next-day briefing, built as a
   LangGraph StateGraph (metrics → optional waitlist → narrative).

Key Design Decisions
--------------------
- **Structured output**: every agent binds a pydantic model as a forced
  tool call (``with_structured_output``), so answers are validated JSON.
- **Two model tiers**: callers pick ``fast`` (default) or ``primary`` per
  request.
- **The model judges, code counts**: scores, rankings and copy come from
  the model; code only computes prompt context and bookkeeping.
- **Audit trail**: every call is logged with latency, tokens and cost in
  ``agent_audit_logs``.  A failed audit write never breaks the agent call.
- **Bulk scoring**: one asyncio task per appointment, with a progress
  counter the dashboard can poll.

Package Structure
-----------------
- ``clinic_pulse/config.py``: Centralized configuration from environment variables
- ``clinic_pulse/database.py`` / ``models.py``: Engine, sessions and ORM models
- ``clinic_pulse/crud.py``: Queries and writes, returning plain dicts
- ``clinic_pulse/prompts.py``: Agent prompt templates
- ``clinic_pulse/agents.py``: Structured-output agents
- ``clinic_pulse/briefing.py``: Daily briefing StateGraph
- ``clinic_pulse/services/``: LLM plumbing, audit logger, bulk scoring
- ``clinic_pulse/api/``: FastAPI routes and Pydantic schemas
- ``clinic_pulse/server.py``: FastAPI application
- ``clinic_pulse/main.py``: CLI
"""
