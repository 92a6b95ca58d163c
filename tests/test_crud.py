"""Tests for the data-access layer."""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import patch

import pytest

from clinic_pulse import crud
from clinic_pulse.models import Appointment, RiskAssessment, WaitlistEntry

DAY = date(2025, 11, 3)


class TestProvidersAndAppointments:
    def test_providers_ordered_by_name(self, db):
        names = [p["name"] for p in crud.get_providers(db)]
        assert names == ["Dr. Alan Jones", "Dr. Sarah Smith"]

    def test_appointments_filtered_by_day_and_provider(self, db):
        rows = crud.get_appointments(db, day=DAY, provider_id="DR_SMITH")
        assert [r["appointment_id"] for r in rows] == ["A0001", "A0002", "A0003", "A0006"]

    def test_appointments_filtered_by_status(self, db):
        rows = crud.get_appointments(db, day=DAY, status="cancelled")
        assert [r["appointment_id"] for r in rows] == ["A0006"]

    def test_appointments_without_filters_span_days(self, db):
        assert len(crud.get_appointments(db)) == 6

    def test_appointment_rows_carry_joined_fields(self, db):
        row = crud.get_appointments(db, day=DAY, provider_id="DR_SMITH")[0]
        assert row["patient_name"] == "Alice Brown"
        assert row["provider_name"] == "Dr. Sarah Smith"
        assert row["commute_type"] == "bike"
        assert row["risk_badge"] == "High"
        assert row["contributing_factors"] == ["Rain with bike commute"]

    def test_unscored_appointment_has_null_risk_fields(self, db):
        row = next(
            r for r in crud.get_appointments(db, day=DAY) if r["appointment_id"] == "A0003"
        )
        assert row["risk_score"] is None
        assert row["virtual_eligible"] is None

    def test_appointment_details(self, db):
        details = crud.get_appointment_details(db, "A0001")
        assert details["provider_specialty"] == "Internal Medicine"
        assert details["zip_code"] == "10001"
        assert details["no_show_rate"] == pytest.approx(0.3)
        assert details["virtual_confidence"] == pytest.approx(0.8)

    def test_appointment_details_without_history(self, db):
        details = crud.get_appointment_details(db, "A0003")
        assert details["total_appointments"] is None
        assert details["assessment_id"] is None

    def test_unknown_appointment_details_is_none(self, db):
        assert crud.get_appointment_details(db, "NOPE") is None


class TestKpis:
    def test_counts_for_provider_day(self, db):
        kpis = crud.get_kpis(db, day=DAY, provider_id="DR_SMITH")
        assert kpis == {"total_appointments": 3, "high_risk_patients": 1, "waitlist_count": 2}

    def test_counts_for_whole_clinic_day(self, db):
        kpis = crud.get_kpis(db, day=DAY)
        assert kpis == {"total_appointments": 4, "high_risk_patients": 1, "waitlist_count": 3}

    def test_high_risk_ignores_non_scheduled(self, db):
        db.get(Appointment, "A0001").status = "confirmed"
        db.commit()
        kpis = crud.get_kpis(db, day=DAY, provider_id="DR_SMITH")
        assert kpis["total_appointments"] == 2
        assert kpis["high_risk_patients"] == 0

    def test_waitlist_count_ignores_date(self, db):
        kpis = crud.get_kpis(db, day=date(2030, 1, 1), provider_id="DR_SMITH")
        assert kpis == {"total_appointments": 0, "high_risk_patients": 0, "waitlist_count": 2}


class TestRiskAssessments:
    def test_get_missing_assessment_is_none(self, db):
        assert crud.get_risk_assessment(db, "A0003") is None

    def test_insert_uses_default_ids_and_model(self, db):
        changes = crud.save_risk_assessment(
            db, {"appointment_id": "A0003", "risk_score": 55, "risk_badge": "Medium"},
        )
        assert changes == 1
        saved = crud.get_risk_assessment(db, "A0003")
        assert saved["assessment_id"] == "ASSESS_A0003"
        assert saved["model_version"] == "claude-haiku-4-5"
        assert saved["contributing_factors"] == []
        assert saved["virtual_eligible"] is False

    def test_upsert_keeps_one_row_per_appointment(self, db):
        crud.save_risk_assessment(
            db,
            {
                "appointment_id": "A0001", "risk_score": 20, "risk_badge": "Low",
                "virtual_eligible": False, "model_version": "claude-sonnet-4-5",
            },
        )
        rows = db.query(RiskAssessment).filter_by(appointment_id="A0001").all()
        assert len(rows) == 1
        assert rows[0].risk_badge == "Low"
        assert rows[0].assessment_id == "ASSESS_A0001"
        assert rows[0].model_version == "claude-sonnet-4-5"


class TestWaitlist:
    def test_waiting_entries_oldest_first(self, db):
        rows = crud.get_waitlist(db, provider_id="DR_SMITH")
        assert [r["waitlist_id"] for r in rows] == ["WL0001", "WL0002"]

    def test_all_waiting_entries(self, db):
        assert {r["waitlist_id"] for r in crud.get_waitlist(db)} == {"WL0001", "WL0002", "WL0003"}

    def test_assign_updates_both_rows(self, db):
        result = crud.assign_waitlist_to_slot(db, "WL0001", "A0003")

        assert result["patient_name"] == "Dana Evans"
        assert result["scheduled_time"] == datetime(2025, 11, 3, 11, 0)
        appt = db.get(Appointment, "A0003")
        assert appt.status == "confirmed"
        assert appt.chief_complaint == "Chest tightness"
        entry = db.get(WaitlistEntry, "WL0001")
        assert entry.status == "filled"
        assert entry.filled_appointment_id == "A0003"
        assert entry.filled_at is not None

    def test_assign_unknown_waitlist_raises(self, db):
        with pytest.raises(crud.NotFoundError):
            crud.assign_waitlist_to_slot(db, "WL9999", "A0003")

    def test_assign_unknown_appointment_raises(self, db):
        with pytest.raises(crud.NotFoundError):
            crud.assign_waitlist_to_slot(db, "WL0001", "A9999")
        assert db.get(WaitlistEntry, "WL0001").status == "waiting"

    def test_failed_commit_changes_neither_row(self, db):
        with patch.object(db, "commit", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                crud.assign_waitlist_to_slot(db, "WL0001", "A0003")

        assert db.get(Appointment, "A0003").status == "scheduled"
        assert db.get(WaitlistEntry, "WL0001").status == "waiting"


class TestPatientsAndWeather:
    def test_patient_with_history(self, db):
        patient = crud.get_patient_with_history(db, "P0001")
        assert patient["name"] == "Alice Brown"
        assert patient["history"]["no_shows"] == 3

    def test_patient_without_history(self, db):
        assert crud.get_patient_with_history(db, "P0003")["history"] is None

    def test_unknown_patient(self, db):
        assert crud.get_patient_with_history(db, "P9999") is None

    def test_weather_lookup(self, db):
        assert crud.get_weather(db, DAY, "10001")["condition"] == "Rainy"
        assert crud.get_weather(db, DAY, "99999") is None


class TestAuditLogs:
    def _row(self, **overrides):
        row = {
            "request_id": "req_1", "agent_type": "risk_scorer", "latency_ms": 120.0,
            "model": "claude-haiku-4-5", "input_tokens": 100, "output_tokens": 50,
            "total_tokens": 150, "estimated_cost_usd": 0.00035, "status": "success",
        }
        row.update(overrides)
        return row

    def test_newest_first(self, db):
        crud.save_audit_log(db, self._row(request_id="old", timestamp="2025-11-01T08:00:00Z"))
        crud.save_audit_log(db, self._row(request_id="new", timestamp="2025-11-02T08:00:00Z"))
        assert [r["request_id"] for r in crud.get_audit_logs(db)] == ["new", "old"]

    def test_filters_and_limit(self, db):
        crud.save_audit_log(db, self._row(status="error", error_message="boom"))
        crud.save_audit_log(db, self._row(agent_type="daily_summary"))
        crud.save_audit_log(db, self._row())

        assert len(crud.get_audit_logs(db, status="error")) == 1
        assert len(crud.get_audit_logs(db, agent_type="risk_scorer")) == 2
        assert len(crud.get_audit_logs(db, limit=1)) == 1

    def test_timezone_aware_timestamp_stored_as_utc(self, db):
        crud.save_audit_log(db, self._row(timestamp="2025-11-02T10:00:00+02:00"))
        assert crud.get_audit_logs(db)[0]["timestamp"] == datetime(2025, 11, 2, 8, 0)
