"""Health check and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from ..db import get_session_dependency

router = APIRouter(tags=["health"])


@router.get("/health/live")
def liveness() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health/ready")
def readiness(session: Session = Depends(get_session_dependency)) -> dict[str, str]:
    """Report readiness once the payroll database answers a query."""

    session.execute(text("SELECT 1"))
    settings = get_settings()
    return {
        "status": "ready",
        "currency": settings.payout_currency,
        "timezone": settings.payroll_timezone,
    }


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics for payroll generation and refunds."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
