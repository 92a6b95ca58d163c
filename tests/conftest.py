"""Shared test fixtures for the Clinic Pulse test suite."""

from __future__ import annotations

import os
from datetime import date, datetime
from typing import Any

import pytest
from langchain_core.messages import AIMessage
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

DAY = date(2025, 11, 3)


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load
    and the default engine never touches a file.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite://")


# ── Fake chat model ──────────────────────────────────────────────────


class FakeStructuredLLM:
    """Stands in for ``ChatAnthropic``: answers by requested output schema.

    ``answers`` maps a pydantic output class to a parsed instance, an
    exception to raise, or a callable ``(messages) -> instance``.
    """

    def __init__(self, answers: dict[type, Any], *, input_tokens: int = 100, output_tokens: int = 50):
        self.answers = answers
        self.usage = {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        }
        self.calls: list[tuple[type, list]] = []

    def with_structured_output(self, schema, include_raw: bool = False):
        fake = self

        class _Runnable:
            async def ainvoke(self, messages):
                fake.calls.append((schema, messages))
                answer = fake.answers[schema]
                if isinstance(answer, Exception):
                    raise answer
                parsed = answer(messages) if callable(answer) else answer
                raw = AIMessage(content="", usage_metadata=fake.usage)
                return {"raw": raw, "parsed": parsed, "parsing_error": None}

        return _Runnable()

    def prompts_for(self, schema) -> list[str]:
        """User prompts sent for *schema*, in call order."""
        return [messages[-1].content for s, messages in self.calls if s is schema]


# ── Database ─────────────────────────────────────────────────────────


def seed(db) -> None:
    """Two providers, three patients and one clinic day (2025-11-03)."""
    from clinic_pulse.models import (
        Appointment,
        Patient,
        PatientHistory,
        Provider,
        RiskAssessment,
        WaitlistEntry,
        WeatherRecord,
    )

    db.add_all([
        Provider(provider_id="DR_SMITH", name="Dr. Sarah Smith", specialty="Internal Medicine"),
        Provider(provider_id="DR_JONES", name="Dr. Alan Jones", specialty="Cardiology"),
        Patient(
            patient_id="P0001", name="Alice Brown", age=34, distance_miles=12.5,
            zip_code="10001", commute_type="bike", preferred_virtual=True,
        ),
        Patient(
            patient_id="P0002", name="Bob Chen", age=61, distance_miles=3.2,
            zip_code="10002", commute_type="car",
        ),
        Patient(
            patient_id="P0003", name="Carol Diaz", age=45, distance_miles=25.0,
            zip_code="10001", commute_type="public_transport",
        ),
    ])
    db.flush()
    db.add_all([
        PatientHistory(
            patient_id="P0001", total_appointments=10, completed=7, no_shows=3,
            no_show_rate=0.3, recent_reschedules=2,
        ),
        PatientHistory(
            patient_id="P0002", total_appointments=8, completed=8, no_shows=0,
            no_show_rate=0.0, recent_reschedules=0,
        ),
        Appointment(
            appointment_id="A0001", patient_id="P0001", provider_id="DR_SMITH",
            scheduled_time=datetime(2025, 11, 3, 9, 0), booked_at=datetime(2025, 10, 20, 12, 0),
            appointment_type="Follow-up", chief_complaint="Blood pressure check",
        ),
        Appointment(
            appointment_id="A0002", patient_id="P0002", provider_id="DR_SMITH",
            scheduled_time=datetime(2025, 11, 3, 9, 30), booked_at=datetime(2025, 11, 1, 9, 30),
            appointment_type="Medication Review", chief_complaint="Statin refill",
        ),
        Appointment(
            appointment_id="A0003", patient_id="P0003", provider_id="DR_SMITH",
            scheduled_time=datetime(2025, 11, 3, 11, 0),
            appointment_type="Annual Physical", chief_complaint="Yearly exam",
        ),
        Appointment(
            appointment_id="A0004", patient_id="P0001", provider_id="DR_JONES",
            scheduled_time=datetime(2025, 11, 3, 10, 0),
            appointment_type="Consultation", chief_complaint="Palpitations",
        ),
        Appointment(
            appointment_id="A0005", patient_id="P0002", provider_id="DR_SMITH",
            scheduled_time=datetime(2025, 11, 4, 9, 0),
            appointment_type="Follow-up", chief_complaint="Lab review",
        ),
        Appointment(
            appointment_id="A0006", patient_id="P0003", provider_id="DR_SMITH",
            scheduled_time=datetime(2025, 11, 3, 14, 0), status="cancelled",
            appointment_type="Follow-up", chief_complaint="Knee pain",
        ),
        WaitlistEntry(
            waitlist_id="WL0001", patient_name="Dana Evans", chief_complaint="Chest tightness",
            reason="Referred after ER visit", preferred_timeframe="Within 1 week",
            provider_preference="Dr. Sarah Smith", requested_provider_id="DR_SMITH",
            added_at=datetime(2025, 9, 1, 8, 0),
        ),
        WaitlistEntry(
            waitlist_id="WL0002", patient_name="Eli Fox", chief_complaint="Wellness visit",
            preferred_timeframe="Flexible", provider_preference="Any",
            requested_provider_id="DR_SMITH", added_at=datetime(2025, 10, 15, 8, 0),
        ),
        WaitlistEntry(
            waitlist_id="WL0003", patient_name="Gina Hall", chief_complaint="Arrhythmia follow-up",
            preferred_timeframe="Within 2 weeks", provider_preference="Dr. Alan Jones",
            requested_provider_id="DR_JONES", added_at=datetime(2025, 10, 1, 8, 0),
        ),
        WaitlistEntry(
            waitlist_id="WL0004", patient_name="Hank Ives", chief_complaint="Rash",
            requested_provider_id="DR_SMITH", added_at=datetime(2025, 8, 1, 8, 0),
            status="filled",
        ),
        WeatherRecord(
            weather_id="W1", date=DAY, zip_code="10001", condition="Rainy",
            temperature_f=45, precipitation_pct=80,
        ),
        WeatherRecord(
            weather_id="W2", date=DAY, zip_code="10002", condition="Sunny",
            temperature_f=60, precipitation_pct=5,
        ),
    ])
    db.flush()
    db.add_all([
        RiskAssessment(
            assessment_id="ASSESS_A0001", appointment_id="A0001", risk_score=78,
            risk_badge="High", primary_risk_factor="30% no-show rate",
            contributing_factors=["Rain with bike commute"],
            predicted_show_probability=0.35, weather_condition="Rainy",
            weather_impact_score=15, virtual_eligible=True,
            virtual_reason="Follow-up suits video", virtual_confidence=0.8,
            model_version="claude-haiku-4-5",
        ),
        RiskAssessment(
            assessment_id="ASSESS_A0002", appointment_id="A0002", risk_score=12,
            risk_badge="Low", primary_risk_factor="Reliable attendance",
            predicted_show_probability=0.95, virtual_eligible=False,
            model_version="claude-haiku-4-5",
        ),
    ])
    db.commit()


@pytest.fixture
def engine():
    """Fresh in-memory database per test, one shared connection."""
    from clinic_pulse.database import init_db, make_engine

    eng = make_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    """Seeded session."""
    session = session_factory()
    seed(session)
    yield session
    session.close()


@pytest.fixture
def audit(session_factory):
    """Audit logger writing into the test database."""
    from clinic_pulse.services.audit import AuditLogger

    return AuditLogger(session_factory)


@pytest.fixture
def client(db, session_factory, audit):
    """FastAPI test client wired to the seeded database (mirrors the lifespan)."""
    from fastapi.testclient import TestClient

    from clinic_pulse.database import get_db
    from clinic_pulse.server import app

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.state.scoring_progress = {}
    app.state.audit_logger = audit
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.scoring_progress = None
    app.state.audit_logger = None


# ── Canned model answers ─────────────────────────────────────────────


@pytest.fixture
def answers():
    """One parsed answer per agent output schema."""
    from clinic_pulse.agents import (
        BulkCampaignOutput,
        DailySummaryOutput,
        RiskAssessmentOutput,
        VirtualEligibilityOutput,
        WaitlistAnalysisOutput,
    )

    touchpoint = {
        "timing": "1 day before",
        "messages": {
            "sms": "Reminder: Dr. Smith on Nov 3. Reply CONFIRM.",
            "email": {"subject": "See you Monday", "body": "Hi, see you on Monday, November 3, 2025."},
            "ehr_notification": "Appointment Nov 3. Please confirm.",
        },
    }
    categories = [
        "low", "medium", "virtual", "new_patient", "high_risk_virtual", "high_risk_non_virtual",
    ]
    return {
        RiskAssessmentOutput: RiskAssessmentOutput(
            risk_score=72,
            risk_badge="High",
            primary_risk_factor="30% historical no-show rate",
            secondary_risk_factor="Rain with a bike commute",
            contributing_factors=["Two recent reschedules"],
            predicted_show_probability=0.4,
            recommendation="Offer a video visit",
        ),
        VirtualEligibilityOutput: VirtualEligibilityOutput(
            virtual_eligible=True,
            virtual_reason="A blood pressure follow-up can be reviewed by video.",
            confidence=0.85,
        ),
        BulkCampaignOutput: BulkCampaignOutput.model_validate(
            {"campaigns": [{"category": c, "touchpoints": [touchpoint]} for c in categories]},
        ),
        WaitlistAnalysisOutput: WaitlistAnalysisOutput.model_validate(
            {
                "priority_patients": [
                    {
                        "waitlist_id": "WL0001", "patient_name": "Dana Evans",
                        "priority_score": 95, "urgency_level": "Critical",
                        "wait_time_days": 63, "recommended_action": "Book this week",
                        "clinical_summary": "Chest tightness after an ER visit.",
                        "chief_complaint": "Chest tightness",
                        "provider_preference": "Dr. Sarah Smith",
                    },
                    {
                        "waitlist_id": "WL0002", "patient_name": "Eli Fox",
                        "priority_score": 35, "urgency_level": "Low",
                        "wait_time_days": 19, "recommended_action": "Offer next opening",
                        "clinical_summary": "Routine wellness visit.",
                        "chief_complaint": "Wellness visit", "provider_preference": "Any",
                    },
                ],
                "summary": "One urgent patient, one flexible.",
                "recommendations": ["Call Dana Evans today", "Offer cancellations to Eli Fox"],
            },
        ),
        DailySummaryOutput: DailySummaryOutput(
            executive_summary="A compact morning with one high-risk patient.",
            key_insights=["One high-risk patient", "Rain expected", "A long midday gap"],
            recommendations=["Call Alice Brown", "Backfill from the waitlist"],
        ),
    }


@pytest.fixture
def fake_llm(answers):
    return FakeStructuredLLM(answers)
