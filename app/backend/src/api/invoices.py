"""Refund endpoints for teacher salary invoices."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.backend.src.core.security import CurrentUser, require_admin_user
from ..db import get_session_dependency
from app.backend.src.schemas.teacher_invoice import (
    InvoiceEnvelope,
    RefundQuoteRead,
    RefundQuoteRequest,
    RefundRequest,
    TeacherInvoiceRead,
)
from app.backend.src.services import teacher_salary

LOGGER = structlog.get_logger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/{invoice_id}/refund", response_model=InvoiceEnvelope)
def refund_invoice(
    invoice_id: int,
    payload: RefundRequest,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    """Record a refund after reconciling its hours and amount."""

    invoice = teacher_salary.record_refund(
        session,
        invoice_id,
        actor=user.id,
        refund_amount=payload.refund_amount,
        refund_hours=payload.refund_hours,
        reason=payload.reason,
        reference=payload.refund_reference,
    )
    LOGGER.info("refund_recorded", invoice_id=invoice_id, actor=user.id)
    return InvoiceEnvelope(
        success=True,
        message="Refund recorded",
        invoice=TeacherInvoiceRead.model_validate(invoice),
    )


@router.post("/{invoice_id}/refund/quote", response_model=RefundQuoteRead)
def quote_refund(
    invoice_id: int,
    payload: RefundQuoteRequest,
    session: Session = Depends(get_session_dependency),
    _: CurrentUser = Depends(require_admin_user),
) -> RefundQuoteRead:
    quote = teacher_salary.quote_invoice_refund(session, invoice_id, payload.refund_hours)
    return RefundQuoteRead(**quote.as_dict())
