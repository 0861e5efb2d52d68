"""Tests for the scheduled salary generation task."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_payroll.db")

import pytest

from app.backend.src.core.config import get_settings
from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import (
    ClassSession,
    MonthlyExchangeRate,
    SalaryAuditLog,
    Teacher,
    TeacherInvoice,
)
from app.backend.src.models.base import Base
from app.backend.src.services.salary_settings import get_global_settings
from tasks import salary_tasks

CAIRO = ZoneInfo("Africa/Cairo")
RUN_DAY = datetime(2025, 4, 1, 0, 5, tzinfo=CAIRO)


class FakeLock:
    def __init__(self, acquired: bool = True) -> None:
        self.acquired = acquired
        self.names: list[str] = []
        self.released = False

    def __call__(self, name: str) -> "FakeLock":
        self.names.append(name)
        return self

    def acquire(self) -> bool:
        return self.acquired

    def release(self) -> None:
        self.released = True


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def payroll_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    settings = get_settings()
    monkeypatch.setattr(settings, "payroll_timezone", "Africa/Cairo")
    monkeypatch.setattr(settings, "redis_enabled_flag", True)


@pytest.fixture()
def march_payroll() -> None:
    with session_scope() as session:
        session.add(MonthlyExchangeRate(month=3, year=2025, rate=50, source="test"))
        teacher = Teacher(first_name="Omar", last_name="Said", email="omar@tutors.example")
        session.add(teacher)
        session.flush()
        for day in range(1, 7):
            session.add(
                ClassSession(
                    teacher_id=teacher.id,
                    scheduled_at=datetime(2025, 3, day, 15, tzinfo=timezone.utc),
                    duration_minutes=90,
                    status="completed",
                )
            )


def test_previous_period_wraps_year() -> None:
    assert salary_tasks.previous_period(datetime(2025, 1, 1, 0, 5, tzinfo=CAIRO), "Africa/Cairo") == (
        12,
        2024,
    )
    assert salary_tasks.previous_period(datetime(2025, 7, 15, tzinfo=CAIRO), "Africa/Cairo") == (6, 2025)


def test_previous_period_uses_payroll_timezone() -> None:
    # 22:30 UTC on Feb 28 is already March 1 in Cairo.
    late_utc = datetime(2025, 2, 28, 22, 30, tzinfo=timezone.utc)

    assert salary_tasks.previous_period(late_utc, "Africa/Cairo") == (2, 2025)
    assert salary_tasks.previous_period(late_utc, "UTC") == (1, 2025)


def test_run_skips_when_disabled(march_payroll: None) -> None:
    with session_scope() as session:
        get_global_settings(session).auto_generate_enabled = False

    result = salary_tasks.run_monthly_generation(now=RUN_DAY, lock_factory=FakeLock())

    assert result == {"status": "skipped", "reason": "disabled", "month": 3, "year": 2025}


def test_run_skips_outside_configured_day(march_payroll: None) -> None:
    result = salary_tasks.run_monthly_generation(
        now=datetime(2025, 4, 2, 0, 5, tzinfo=CAIRO), lock_factory=FakeLock()
    )

    assert result["status"] == "skipped"
    assert result["reason"] == "not_run_day"


def test_missing_exchange_rate_is_audited() -> None:
    result = salary_tasks.run_monthly_generation(now=RUN_DAY, lock_factory=FakeLock())

    assert result["reason"] == "missing_exchange_rate"
    with session_scope() as session:
        failure = session.query(SalaryAuditLog).filter(SalaryAuditLog.action == "job_fail").one()
        assert failure.success is False
        assert failure.entity_id == "2025-03"
        assert failure.error_message == "Exchange rate for 03/2025 is not set."
        assert session.query(TeacherInvoice).count() == 0


def test_run_generates_previous_month_under_lock(march_payroll: None) -> None:
    lock = FakeLock()

    result = salary_tasks.run_monthly_generation(now=RUN_DAY, lock_factory=lock)

    assert result["status"] == "completed"
    assert result["created"] == 1
    assert lock.names == ["2025-03"]
    assert lock.released is True
    with session_scope() as session:
        invoice = session.query(TeacherInvoice).one()
        assert invoice.total_hours == 9
        assert invoice.created_by == "system"
        job = session.query(SalaryAuditLog).filter(SalaryAuditLog.action == "job_run").one()
        assert job.details["trigger"] == "scheduled"


def test_run_skips_when_lock_is_held(march_payroll: None) -> None:
    result = salary_tasks.run_monthly_generation(now=RUN_DAY, lock_factory=FakeLock(acquired=False))

    assert result["reason"] == "locked"
    with session_scope() as session:
        assert session.query(TeacherInvoice).count() == 0


def test_force_ignores_schedule_and_lock_when_redis_disabled(
    march_payroll: None, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(get_settings(), "redis_enabled_flag", False)
    lock = FakeLock(acquired=False)

    result = salary_tasks.run_monthly_generation(
        now=datetime(2025, 4, 17, 9, tzinfo=CAIRO), force=True, lock_factory=lock
    )

    assert result["status"] == "completed"
    assert result["created"] == 1
    assert lock.names == []
