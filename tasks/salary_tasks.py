"""Celery tasks for scheduled teacher salary generation."""

from __future__ import annotations

from datetime import datetime
from time import perf_counter
from typing import Any
from zoneinfo import ZoneInfo

import structlog

from app.backend.src.core.config import get_settings
from app.backend.src.core.redis_lock import GenerationLock
from app.backend.src.db import session_scope
from app.backend.src.services.audit import record_audit
from app.backend.src.services.metrics import salary_generation_runs_total
from app.backend.src.services.salary_settings import get_exchange_rate, get_global_settings
from app.backend.src.services.teacher_salary import generate_monthly_invoices
from .worker import MONTHLY_GENERATION_TASK, celery

LOGGER = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"


def previous_period(now: datetime | None = None, tz_name: str | None = None) -> tuple[int, int]:
    """Return ``(month, year)`` of the month before ``now`` in the payroll timezone."""

    zone = ZoneInfo(tz_name or get_settings().payroll_timezone)
    local_now = now.astimezone(zone) if now is not None else datetime.now(zone)
    if local_now.month == 1:
        return 12, local_now.year - 1
    return local_now.month - 1, local_now.year


def run_monthly_generation(
    *,
    now: datetime | None = None,
    force: bool = False,
    lock_factory=GenerationLock,
) -> dict[str, Any]:
    """Generate last month's invoices when today is the configured run day."""

    settings = get_settings()
    zone = ZoneInfo(settings.payroll_timezone)
    local_now = now.astimezone(zone) if now is not None else datetime.now(zone)
    month, year = previous_period(local_now, settings.payroll_timezone)

    with session_scope() as session:
        salary_settings = get_global_settings(session)
        if not force:
            if not salary_settings.auto_generate_enabled:
                LOGGER.info("salary_job_skipped", reason="disabled", month=month, year=year)
                return {"status": "skipped", "reason": "disabled", "month": month, "year": year}
            if local_now.day != salary_settings.auto_generate_day:
                return {"status": "skipped", "reason": "not_run_day", "month": month, "year": year}

        if get_exchange_rate(session, month, year) is None:
            record_audit(
                session,
                "job_fail",
                entity_type="salary_generation",
                entity_id=f"{year}-{month:02d}",
                actor=SYSTEM_ACTOR,
                success=False,
                error_message=f"Exchange rate for {month:02d}/{year} is not set.",
            )
            salary_generation_runs_total.labels(status="failed").inc()
            LOGGER.warning("salary_job_missing_exchange_rate", month=month, year=year)
            return {
                "status": "skipped",
                "reason": "missing_exchange_rate",
                "month": month,
                "year": year,
            }

        lock = lock_factory(f"{year}-{month:02d}") if settings.redis_enabled else None
        if lock is not None and not lock.acquire():
            LOGGER.info("salary_job_skipped", reason="locked", month=month, year=year)
            return {"status": "skipped", "reason": "locked", "month": month, "year": year}

        try:
            results = generate_monthly_invoices(
                session, month, year, actor_id=SYSTEM_ACTOR, trigger="scheduled"
            )
        finally:
            if lock is not None:
                lock.release()

    return {"status": "completed", "month": month, "year": year, **results.summary()}


@celery.task(name=MONTHLY_GENERATION_TASK)
def generate_monthly_salaries(force: bool = False) -> dict[str, Any]:
    """Scheduled entrypoint for monthly invoice generation."""

    start = perf_counter()
    try:
        result = run_monthly_generation(force=force)
        LOGGER.info("celery_job_success", task="generate_monthly_salaries", **result)
        return result
    except Exception as exc:  # pragma: no cover - logged and re-raised
        LOGGER.error("celery_job_failure", task="generate_monthly_salaries", error=str(exc))
        raise
    finally:
        LOGGER.info(
            "salary_job_finished", duration_seconds=round(perf_counter() - start, 3)
        )


__all__ = ["generate_monthly_salaries", "previous_period", "run_monthly_generation"]
