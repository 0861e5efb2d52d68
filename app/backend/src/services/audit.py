"""Audit trail helpers for payroll actions."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.orm import Session

from app.backend.src.models import SalaryAuditLog

LOGGER = structlog.get_logger(__name__)


def record_audit(
    session: Session,
    action: str,
    *,
    entity_type: str,
    entity_id: Any = None,
    actor: str | None = None,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
    error_message: str | None = None,
) -> SalaryAuditLog:
    """Stage an audit row on ``session``; the caller commits."""

    entry = SalaryAuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        actor=actor,
        before=before,
        after=after,
        details=details,
        success=success,
        error_message=error_message,
    )
    session.add(entry)
    LOGGER.info(
        "salary_audit_recorded",
        action=action,
        entity_type=entity_type,
        entity_id=entry.entity_id,
        actor=actor,
        success=success,
    )
    return entry


def list_audit_entries(
    session: Session, *, entity_type: str, entity_id: Any
) -> list[SalaryAuditLog]:
    return (
        session.query(SalaryAuditLog)
        .filter(
            SalaryAuditLog.entity_type == entity_type,
            SalaryAuditLog.entity_id == str(entity_id),
        )
        .order_by(SalaryAuditLog.created_at.asc(), SalaryAuditLog.id.asc())
        .all()
    )


__all__ = ["list_audit_entries", "record_audit"]
