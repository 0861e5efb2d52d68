"""Utilities for seeding development data."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.backend.src.models import ClassSession, MonthlyExchangeRate, Teacher

from .salary_settings import get_exchange_rate, get_global_settings

DEFAULT_EXCHANGE_RATE = 48.5
DEMO_TEACHERS: tuple[tuple[str, str, str, int], ...] = (
    ("Mona", "Hassan", "mona.hassan@tutors.example", 40),
    ("Karim", "Adel", "karim.adel@tutors.example", 70),
)


@dataclass
class SeedResult:
    """Information about the seeded payroll data."""

    teachers_created: int
    sessions_created: int
    exchange_rate_created: bool


def seed_development_payroll(
    session: Session,
    month: int,
    year: int,
    *,
    exchange_rate: float = DEFAULT_EXCHANGE_RATE,
) -> SeedResult:
    """Ensure settings, an exchange rate, demo teachers and their classes exist.

    Each demo teacher gets one hour-long attended class per listed hour in the
    requested month. Existing teachers are left untouched.
    """

    get_global_settings(session)

    rate_created = False
    if get_exchange_rate(session, month, year) is None:
        session.add(
            MonthlyExchangeRate(
                month=month,
                year=year,
                rate=exchange_rate,
                source="seed",
                set_by="seed",
                set_at=datetime.now(timezone.utc),
            )
        )
        rate_created = True

    teachers_created = 0
    sessions_created = 0
    start = datetime(year, month, 1, 8, tzinfo=timezone.utc)
    for first_name, last_name, email, hours in DEMO_TEACHERS:
        teacher = session.query(Teacher).filter(Teacher.email == email).one_or_none()
        if teacher is not None:
            continue
        teacher = Teacher(first_name=first_name, last_name=last_name, email=email)
        session.add(teacher)
        teachers_created += 1
        for index in range(hours):
            session.add(
                ClassSession(
                    teacher=teacher,
                    scheduled_at=start + timedelta(days=index % 27, hours=index // 27),
                    duration_minutes=60,
                    status="attended",
                    subject="Demo lesson",
                )
            )
            sessions_created += 1

    session.flush()
    return SeedResult(
        teachers_created=teachers_created,
        sessions_created=sessions_created,
        exchange_rate_created=rate_created,
    )
