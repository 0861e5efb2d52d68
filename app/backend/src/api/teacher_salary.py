"""Teacher salary invoice endpoints for admins and teachers."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.backend.src.core.security import CurrentUser, require_admin_user, require_teacher_user
from ..db import get_session_dependency
from app.backend.src.models import TeacherInvoice
from app.backend.src.schemas.generation import (
    GenerateRequest,
    GenerationEnvelope,
    GenerationResultsRead,
    GenerationSummary,
)
from app.backend.src.schemas.teacher_invoice import (
    AuditEntryRead,
    BonusCreate,
    ExtraCreate,
    InvoiceEnvelope,
    InvoiceListEnvelope,
    MarkPaidRequest,
    OverridesRequest,
    TeacherInvoiceRead,
    TeacherInvoiceSummary,
    TeacherYtdSummary,
)
from app.backend.src.services import teacher_salary

LOGGER = structlog.get_logger(__name__)

router = APIRouter(prefix="/teacher-salary", tags=["teacher-salary"])


def _envelope(invoice: TeacherInvoice, message: str) -> InvoiceEnvelope:
    return InvoiceEnvelope(
        success=True,
        message=message,
        invoice=TeacherInvoiceRead.model_validate(invoice),
    )


@router.post("/admin/generate", response_model=GenerationEnvelope)
def generate_invoices(
    payload: GenerateRequest,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> GenerationEnvelope:
    """Generate draft invoices for every active teacher for a month."""

    results = teacher_salary.generate_monthly_invoices(
        session,
        payload.month,
        payload.year,
        actor_id=user.id,
        teacher_ids=payload.teacher_ids,
        dry_run=payload.dry_run,
    )
    summary = results.summary()
    LOGGER.info("salary_generation_requested", actor=user.id, **summary)
    prefix = "Dry run" if results.dry_run else "Generation complete"
    return GenerationEnvelope(
        success=True,
        message=(
            f"{prefix} for {payload.month:02d}/{payload.year}: "
            f"{summary['created']} created, {summary['adjusted']} adjusted, "
            f"{summary['adjustments_created']} adjustments, "
            f"{summary['skipped']} skipped, {summary['failed']} failed."
        ),
        results=GenerationResultsRead(
            month=results.month,
            year=results.year,
            dry_run=results.dry_run,
            summary=GenerationSummary(**summary),
            invoices=results.invoices,
            skipped=results.skipped_details,
            errors=results.errors,
        ),
    )


@router.get("/admin/invoices", response_model=InvoiceListEnvelope)
def list_invoices(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None),
    status: str | None = Query(default=None),
    teacher_id: int | None = Query(default=None, alias="teacherId"),
    session: Session = Depends(get_session_dependency),
    _: CurrentUser = Depends(require_admin_user),
) -> InvoiceListEnvelope:
    invoices = teacher_salary.list_invoices(
        session, month=month, year=year, status=status, teacher_id=teacher_id
    )
    return InvoiceListEnvelope(
        invoices=[TeacherInvoiceSummary.model_validate(invoice) for invoice in invoices]
    )


@router.get("/admin/invoices/{invoice_id}", response_model=InvoiceEnvelope)
def get_invoice(
    invoice_id: int,
    session: Session = Depends(get_session_dependency),
    _: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.get_invoice(session, invoice_id)
    return _envelope(invoice, "Invoice retrieved")


@router.get("/admin/invoices/{invoice_id}/audit", response_model=list[AuditEntryRead])
def get_invoice_audit(
    invoice_id: int,
    session: Session = Depends(get_session_dependency),
    _: CurrentUser = Depends(require_admin_user),
) -> list[AuditEntryRead]:
    entries = teacher_salary.get_invoice_audit(session, invoice_id)
    return [AuditEntryRead.model_validate(entry) for entry in entries]


@router.post("/admin/invoices/{invoice_id}/publish", response_model=InvoiceEnvelope)
def publish_invoice(
    invoice_id: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.publish_invoice(session, invoice_id, actor=user.id)
    return _envelope(invoice, "Invoice published")


@router.post("/admin/invoices/{invoice_id}/unpublish", response_model=InvoiceEnvelope)
def unpublish_invoice(
    invoice_id: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.unpublish_invoice(session, invoice_id, actor=user.id)
    return _envelope(invoice, "Invoice reverted to draft")


@router.post("/admin/invoices/{invoice_id}/mark-paid", response_model=InvoiceEnvelope)
def mark_invoice_paid(
    invoice_id: int,
    payload: MarkPaidRequest,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.mark_invoice_paid(
        session,
        invoice_id,
        actor=user.id,
        payment_method=payload.payment_method,
        payment_proof_url=payload.payment_proof_url,
        transaction_id=payload.transaction_id,
        notes=payload.notes,
    )
    return _envelope(invoice, "Invoice marked as paid")


@router.post("/admin/invoices/{invoice_id}/bonuses", response_model=InvoiceEnvelope)
def add_bonus(
    invoice_id: int,
    payload: BonusCreate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.add_bonus(
        session,
        invoice_id,
        actor=user.id,
        source=payload.source,
        reason=payload.reason,
        amount_usd=payload.amount_usd,
        gross_amount_usd=payload.gross_amount_usd,
        guardian_id=payload.guardian_id,
    )
    return _envelope(invoice, "Bonus added")


@router.delete("/admin/invoices/{invoice_id}/bonuses/{bonus_id}", response_model=InvoiceEnvelope)
def remove_bonus(
    invoice_id: int,
    bonus_id: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.remove_bonus(session, invoice_id, bonus_id, actor=user.id)
    return _envelope(invoice, "Bonus removed")


@router.post("/admin/invoices/{invoice_id}/extras", response_model=InvoiceEnvelope)
def add_extra(
    invoice_id: int,
    payload: ExtraCreate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.add_extra(
        session,
        invoice_id,
        actor=user.id,
        amount_usd=payload.amount_usd,
        description=payload.description,
        category=payload.category,
    )
    return _envelope(invoice, "Extra added")


@router.delete("/admin/invoices/{invoice_id}/extras/{extra_id}", response_model=InvoiceEnvelope)
def remove_extra(
    invoice_id: int,
    extra_id: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.remove_extra(session, invoice_id, extra_id, actor=user.id)
    return _envelope(invoice, "Extra removed")


@router.post("/admin/invoices/{invoice_id}/overrides", response_model=InvoiceEnvelope)
def apply_overrides(
    invoice_id: int,
    payload: OverridesRequest,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.apply_overrides(
        session, invoice_id, payload.overrides, actor=user.id
    )
    return _envelope(invoice, "Overrides applied")


@router.delete("/admin/invoices/{invoice_id}", response_model=InvoiceEnvelope)
def delete_invoice(
    invoice_id: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> InvoiceEnvelope:
    invoice = teacher_salary.delete_invoice(session, invoice_id, actor=user.id)
    return _envelope(invoice, "Invoice deleted")


@router.get("/teacher/invoices", response_model=InvoiceListEnvelope)
def list_my_invoices(
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_teacher_user),
) -> InvoiceListEnvelope:
    invoices = teacher_salary.list_teacher_invoices(session, user.teacher_id)
    return InvoiceListEnvelope(
        invoices=[TeacherInvoiceSummary.model_validate(invoice) for invoice in invoices]
    )


@router.get("/teacher/ytd", response_model=TeacherYtdSummary)
def my_ytd_summary(
    year: int | None = Query(default=None),
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_teacher_user),
) -> TeacherYtdSummary:
    target_year = year or datetime.now(timezone.utc).year
    summary = teacher_salary.teacher_ytd_summary(session, user.teacher_id, target_year)
    return TeacherYtdSummary(**summary)
