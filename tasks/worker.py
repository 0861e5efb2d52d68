"""Celery application for scheduled payroll work."""

from __future__ import annotations

import ssl
from pathlib import Path
from typing import Any

import structlog
from celery import Celery, signals
from celery.schedules import crontab
from kombu import Queue

from app.backend.src.core.config import get_settings

LOGGER = structlog.get_logger(__name__)
PROJECT_ROOT = Path(__file__).resolve().parents[1]

PAYROLL_QUEUE = "payroll"
MONTHLY_GENERATION_TASK = "tasks.generate_monthly_salaries"

settings = get_settings()


def _redis_ssl_options(ca_cert_path: str | None) -> dict[str, Any]:
    """Build redis-py TLS options; a missing CA file falls back to the system store."""

    options: dict[str, Any] = {"ssl_cert_reqs": ssl.CERT_REQUIRED}
    if not ca_cert_path:
        return options

    candidate = Path(ca_cert_path).expanduser()
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    if candidate.is_file():
        options["ssl_ca_certs"] = str(candidate)
    else:
        LOGGER.warning("redis_ca_certificate_missing", resolved_path=str(candidate))
    return options


def _beat_schedule() -> dict[str, dict[str, Any]]:
    # Fires every day; run_monthly_generation compares against auto_generate_day.
    return {
        "generate-monthly-salaries": {
            "task": MONTHLY_GENERATION_TASK,
            "schedule": crontab(minute=5, hour=0),
            "options": {"queue": PAYROLL_QUEUE},
        },
    }


celery = Celery(
    "tutor_payroll",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=["tasks.salary_tasks"],
)

celery_conf: dict[str, object] = {
    "task_default_queue": PAYROLL_QUEUE,
    "task_queues": (Queue(PAYROLL_QUEUE),),
    "timezone": settings.payroll_timezone,
    "enable_utc": True,
    "beat_schedule": _beat_schedule(),
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "worker_prefetch_multiplier": 1,
    "task_acks_late": True,
    "broker_transport_options": {"global_keyprefix": "tutor-payroll-broker:"},
    "result_backend_transport_options": {"global_keyprefix": "tutor-payroll-result:"},
    "broker_connection_retry_on_startup": True,
}

if settings.broker_url.startswith("rediss://"):
    celery_conf["broker_use_ssl"] = _redis_ssl_options(settings.redis_ca_cert_path)
if settings.result_backend.startswith("rediss://"):
    celery_conf["redis_backend_use_ssl"] = _redis_ssl_options(settings.redis_ca_cert_path)

celery.conf.update(**celery_conf)

LOGGER.info(
    "celery_payroll_app_configured",
    broker=settings.broker_url,
    timezone=settings.payroll_timezone,
)

from . import salary_tasks  # noqa: E402,F401  # isort: skip


@signals.worker_ready.connect
def _log_worker_ready(sender: Any | None = None, **_: Any) -> None:
    app = sender.app if sender is not None else celery
    try:
        with app.connection_for_read() as connection:
            connection.ensure_connection(max_retries=1)
    except Exception as exc:  # pragma: no cover - requires broker connectivity
        LOGGER.error("celery_broker_unavailable", broker=settings.broker_url, error=str(exc))
        raise
    LOGGER.info(
        "celery_worker_ready",
        queue=app.conf.task_default_queue,
        registered_tasks=sorted(name for name in app.tasks if name.startswith("tasks.")),
    )


@signals.task_prerun.connect
def _log_task_prerun(
    sender: Any | None = None,
    task_id: str | None = None,
    task: Any | None = None,
    kwargs: dict[str, Any] | None = None,
    **_: Any,
) -> None:
    task_name = getattr(task, "name", "") or ""
    if not task_name.startswith("tasks."):
        return
    LOGGER.info(
        "celery_task_prerun",
        task_id=task_id,
        task_name=task_name,
        force=(kwargs or {}).get("force", False),
    )


@signals.task_postrun.connect
def _log_task_postrun(
    sender: Any | None = None,
    task_id: str | None = None,
    task: Any | None = None,
    retval: Any | None = None,
    state: str | None = None,
    **_: Any,
) -> None:
    task_name = getattr(task, "name", "") or ""
    if not task_name.startswith("tasks."):
        return
    payload: dict[str, Any] = {"task_id": task_id, "task_name": task_name, "state": state}
    if state == "SUCCESS" and isinstance(retval, dict):
        payload["status"] = retval.get("status")
        payload["reason"] = retval.get("reason")
    LOGGER.info("celery_task_postrun", **payload)


__all__ = ["MONTHLY_GENERATION_TASK", "PAYROLL_QUEUE", "celery"]
