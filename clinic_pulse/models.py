"""ORM models for the scheduling store.

Identifiers are human-readable strings (``DR_SMITH``, ``P0001``,
``A0001``, ``WL0001``) rather than surrogate integers, because the
dashboard and the prompts both display them.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from clinic_pulse.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class Provider(Base):
    __tablename__ = "providers"

    provider_id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    specialty = Column(String(100), nullable=False)
    max_daily_slots = Column(Integer, nullable=False, default=20)

    appointments = relationship("Appointment", back_populates="provider")

    def __repr__(self):
        return f"<Provider(id={self.provider_id}, name={self.name})>"


class Patient(Base):
    __tablename__ = "patients"

    patient_id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    age = Column(Integer)
    distance_miles = Column(Float)
    zip_code = Column(String(10), index=True)
    phone = Column(String(30))
    email = Column(String(200))
    commute_type = Column(String(30))  # car | bike | public_transport | cab
    preferred_virtual = Column(Boolean, nullable=False, default=False)

    history = relationship("PatientHistory", back_populates="patient", uselist=False)
    appointments = relationship("Appointment", back_populates="patient")

    def __repr__(self):
        return f"<Patient(id={self.patient_id}, name={self.name})>"


class PatientHistory(Base):
    """Attendance summary used as the main input of the risk scorer."""

    __tablename__ = "patient_history_summary"

    patient_id = Column(String(50), ForeignKey("patients.patient_id"), primary_key=True)
    total_appointments = Column(Integer, nullable=False, default=0)
    completed = Column(Integer, nullable=False, default=0)
    no_shows = Column(Integer, nullable=False, default=0)
    no_show_rate = Column(Float, nullable=False, default=0.0)
    last_appointment_date = Column(String(30))
    recent_reschedules = Column(Integer, nullable=False, default=0)

    patient = relationship("Patient", back_populates="history")


class Appointment(Base):
    __tablename__ = "appointments"

    appointment_id = Column(String(50), primary_key=True)
    patient_id = Column(String(50), ForeignKey("patients.patient_id"), nullable=False, index=True)
    provider_id = Column(String(50), ForeignKey("providers.provider_id"), nullable=False, index=True)
    scheduled_time = Column(DateTime, nullable=False, index=True)
    booked_at = Column(DateTime)
    appointment_type = Column(String(100))
    chief_complaint = Column(String(300))
    # scheduled | confirmed | completed | no_show | cancelled
    status = Column(String(20), nullable=False, default="scheduled", index=True)
    duration_mins = Column(Integer, nullable=False, default=30)

    patient = relationship("Patient", back_populates="appointments")
    provider = relationship("Provider", back_populates="appointments")
    risk_assessment = relationship(
        "RiskAssessment", back_populates="appointment", uselist=False,
    )

    def __repr__(self):
        return f"<Appointment(id={self.appointment_id}, at={self.scheduled_time})>"


class WaitlistEntry(Base):
    __tablename__ = "waitlist_patients"

    waitlist_id = Column(String(50), primary_key=True)
    patient_name = Column(String(200), nullable=False)
    chief_complaint = Column(String(300))
    reason = Column(Text)
    preferred_timeframe = Column(String(50))  # "Within 1 week" … "Flexible"
    provider_preference = Column(String(200))
    requested_provider_id = Column(
        String(50), ForeignKey("providers.provider_id"), index=True,
    )
    added_at = Column(DateTime, nullable=False, default=_utcnow)
    status = Column(String(20), nullable=False, default="waiting", index=True)
    filled_appointment_id = Column(String(50), ForeignKey("appointments.appointment_id"))
    filled_at = Column(DateTime)


class WeatherRecord(Base):
    __tablename__ = "weather_data"
    __table_args__ = (UniqueConstraint("date", "zip_code", name="uq_weather_date_zip"),)

    weather_id = Column(String(50), primary_key=True)
    date = Column(Date, nullable=False)
    zip_code = Column(String(10), nullable=False)
    condition = Column(String(20), nullable=False)  # Sunny | Cloudy | Rainy | Snowy | Foggy
    temperature_f = Column(Float)
    precipitation_pct = Column(Float)


class RiskAssessment(Base):
    """Model-produced risk and virtual-eligibility fields, stored verbatim."""

    __tablename__ = "ai_risk_assessments"

    assessment_id = Column(String(80), primary_key=True)
    appointment_id = Column(
        String(50), ForeignKey("appointments.appointment_id"),
        nullable=False, unique=True,
    )
    risk_score = Column(Float)
    risk_badge = Column(String(10))  # Low | Medium | High
    primary_risk_factor = Column(Text)
    secondary_risk_factor = Column(Text)
    contributing_factors = Column(JSON, default=list)
    predicted_show_probability = Column(Float)
    weather_condition = Column(String(20))
    weather_impact_score = Column(Float, default=0)
    virtual_eligible = Column(Boolean, default=False)
    virtual_reason = Column(Text)
    virtual_confidence = Column(Float)
    model_version = Column(String(100))
    generated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    appointment = relationship("Appointment", back_populates="risk_assessment")


class AuditLogEntry(Base):
    """One row per model call."""

    __tablename__ = "agent_audit_logs"

    log_id = Column(String(80), primary_key=True)
    request_id = Column(String(80), nullable=False, index=True)
    agent_type = Column(String(40), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, default=_utcnow, index=True)
    latency_ms = Column(Float, nullable=False, default=0)
    model = Column(String(100))
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    estimated_cost_usd = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, index=True)  # success | error | partial
    error_message = Column(Text)
    appointment_id = Column(String(50))
    patient_id = Column(String(50))
