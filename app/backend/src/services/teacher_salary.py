"""Teacher salary invoice generation and lifecycle operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Iterable, Mapping

import structlog
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from app.backend.src.models import (
    COUNTABLE_STATUSES,
    ClassSession,
    InvoiceBonus,
    InvoiceChangeEntry,
    InvoiceExtra,
    InvoiceRefund,
    MonthlyExchangeRate,
    SalarySettings,
    Teacher,
    TeacherInvoice,
)
from app.backend.src.models.teacher_invoice import BONUS_SOURCES, EXTRA_CATEGORIES

from . import notifications
from .accumulator import (
    build_change_entry,
    can_transition,
    ensure_mutable,
    merge_overrides,
    normalize_overrides,
    recalculate_invoice,
)
from .audit import list_audit_entries, record_audit
from .currency import round_currency, round_hours, to_target_currency, to_usd
from .exceptions import (
    ConfigurationError,
    InvoiceNotFoundError,
    InvoiceStateError,
    InvoiceValidationError,
    RefundValidationError,
)
from .metrics import (
    invoice_transitions_total,
    refunds_total,
    salary_generation_runs_total,
    salary_generation_seconds,
    salary_generation_teachers_total,
)
from .refunds import RefundQuote, quote_refund, validate_refund
from .salary_settings import (
    get_exchange_rate,
    get_global_settings,
    resolve_fee_config,
    resolve_teacher_rate,
    validate_period,
)

LOGGER = structlog.get_logger(__name__)

GUARDIAN_BONUS_SHARE = 0.95
INVOICE_ENTITY = "teacher_invoice"
TEACHER_VISIBLE_STATUSES: tuple[str, ...] = ("published", "paid", "archived")


@dataclass
class GenerationResults:
    """Summary of one generation run."""

    month: int
    year: int
    dry_run: bool = False
    total: int = 0
    created: int = 0
    adjusted: int = 0
    adjustments_created: int = 0
    skipped: int = 0
    failed: int = 0
    invoices: list[dict[str, Any]] = field(default_factory=list)
    skipped_details: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "created": self.created,
            "adjusted": self.adjusted,
            "adjustments_created": self.adjustments_created,
            "skipped": self.skipped,
            "failed": self.failed,
        }

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def month_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` UTC range of a calendar month."""

    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def _snapshot(invoice: TeacherInvoice) -> dict[str, Any]:
    return {
        "status": invoice.status,
        "total_hours": invoice.total_hours,
        "rate_usd": invoice.rate_usd,
        "exchange_rate": invoice.exchange_rate,
        "total_usd": invoice.total_usd,
        "total_egp": invoice.total_egp,
        "transfer_fee_egp": invoice.transfer_fee_egp,
        "net_amount_egp": invoice.net_amount_egp,
        "refunded_hours": invoice.refunded_hours,
    }


def _append_change(
    invoice: TeacherInvoice,
    action: str,
    *,
    actor: str | None,
    old_value: Any = None,
    new_value: Any = None,
    note: str | None = None,
) -> None:
    entry = build_change_entry(
        action, changed_by=actor, old_value=old_value, new_value=new_value, note=note
    )
    invoice.change_history.append(InvoiceChangeEntry(**entry))
    invoice.updated_by = actor


def _get_invoice_or_404(session: Session, invoice_id: int) -> TeacherInvoice:
    invoice = session.get(TeacherInvoice, invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError("Invoice not found")
    return invoice


def _commit(session: Session, invoice: TeacherInvoice) -> TeacherInvoice:
    session.add(invoice)
    session.commit()
    session.refresh(invoice)
    return invoice


def _transition(invoice: TeacherInvoice, new_status: str) -> str:
    old_status = invoice.status
    if not can_transition(old_status, new_status):
        raise InvoiceStateError(
            f"Cannot change invoice status from '{old_status}' to '{new_status}'."
        )
    invoice.status = new_status
    invoice_transitions_total.labels(to_status=new_status).inc()
    return old_status


# Generation ------------------------------------------------------------------


def _unbilled_sessions(
    session: Session, teacher_id: int, start: datetime, end: datetime
) -> list[ClassSession]:
    return (
        session.query(ClassSession)
        .filter(
            ClassSession.teacher_id == teacher_id,
            ClassSession.scheduled_at >= start,
            ClassSession.scheduled_at < end,
            ClassSession.status.in_(COUNTABLE_STATUSES),
            ClassSession.deleted.is_(False),
            ClassSession.billed_invoice_id.is_(None),
        )
        .order_by(ClassSession.scheduled_at.asc())
        .all()
    )


def _link_sessions(invoice: TeacherInvoice, sessions: Iterable[ClassSession]) -> None:
    now = datetime.now(timezone.utc)
    for class_session in sessions:
        class_session.invoice = invoice
        class_session.billed_at = now


def _add_hours(
    invoice: TeacherInvoice,
    sessions: list[ClassSession],
    hours: float,
    settings: SalarySettings,
    *,
    actor: str | None,
) -> None:
    old_hours = invoice.total_hours
    _link_sessions(invoice, sessions)
    invoice.total_hours = round_hours((invoice.total_hours or 0) + hours)
    if invoice.rate_source == "system":
        partition, rate, _ = resolve_teacher_rate(settings, invoice.teacher, invoice.total_hours)
        invoice.rate_partition = partition
        invoice.rate_usd = rate
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "classes_added",
        actor=actor,
        old_value={"total_hours": old_hours},
        new_value={"total_hours": invoice.total_hours, "classes": len(sessions)},
    )


def _new_invoice(
    teacher: Teacher,
    month: int,
    year: int,
    *,
    actor: str | None,
    currency: str,
) -> TeacherInvoice:
    return TeacherInvoice(
        teacher=teacher,
        month=month,
        year=year,
        status="draft",
        currency=currency,
        overrides={},
        created_by=actor,
        updated_by=actor,
    )


def _process_teacher(
    session: Session,
    teacher: Teacher,
    *,
    settings: SalarySettings,
    rate_record: MonthlyExchangeRate,
    month: int,
    year: int,
    actor: str | None,
    dry_run: bool,
) -> tuple[str, TeacherInvoice | None, float, str | None]:
    """Generate or adjust one teacher's invoice.

    Returns ``(outcome, invoice, hours, reason)``.
    """

    start, end = month_bounds(month, year)
    sessions = _unbilled_sessions(session, teacher.id, start, end)
    new_hours = round_hours(sum(class_session.hours for class_session in sessions))

    existing = (
        session.query(TeacherInvoice)
        .filter(
            TeacherInvoice.teacher_id == teacher.id,
            TeacherInvoice.month == month,
            TeacherInvoice.year == year,
            TeacherInvoice.is_adjustment.is_(False),
            TeacherInvoice.deleted.is_(False),
            TeacherInvoice.status != "archived",
        )
        .order_by(TeacherInvoice.id.asc())
        .first()
    )

    if existing is not None:
        if not sessions:
            return "skipped", existing, 0.0, "Invoice already exists"

        if existing.status in ("draft", "published"):
            if not dry_run:
                _add_hours(existing, sessions, new_hours, settings, actor=actor)
            return "adjusted", existing, new_hours, None

        open_adjustment = (
            session.query(TeacherInvoice)
            .filter(
                TeacherInvoice.adjustment_for_id == existing.id,
                TeacherInvoice.status == "draft",
                TeacherInvoice.deleted.is_(False),
            )
            .order_by(TeacherInvoice.id.desc())
            .first()
        )
        if open_adjustment is not None:
            if not dry_run:
                _add_hours(open_adjustment, sessions, new_hours, settings, actor=actor)
            return "adjusted", open_adjustment, new_hours, None

        if dry_run:
            return "adjustments_created", None, new_hours, None

        adjustment = _new_invoice(
            teacher, month, year, actor=actor, currency=existing.currency
        )
        adjustment.is_adjustment = True
        adjustment.adjustment_for_id = existing.id
        adjustment.adjustment_type = "late_submission"
        adjustment.total_hours = new_hours
        adjustment.rate_partition = existing.rate_partition
        adjustment.rate_usd = existing.rate_usd
        adjustment.rate_source = existing.rate_source
        adjustment.exchange_rate = existing.exchange_rate
        adjustment.exchange_rate_source = existing.exchange_rate_source
        adjustment.transfer_fee_model = existing.transfer_fee_model
        adjustment.transfer_fee_value = existing.transfer_fee_value
        adjustment.transfer_fee_source = existing.transfer_fee_source
        session.add(adjustment)
        _link_sessions(adjustment, sessions)
        recalculate_invoice(adjustment)
        _append_change(
            adjustment,
            "created",
            actor=actor,
            new_value={"total_hours": new_hours, "adjustment_for_id": existing.id},
            note="Late class submissions after payment",
        )
        return "adjustments_created", adjustment, new_hours, None

    if new_hours <= 0:
        return "skipped", None, 0.0, "Zero hours"

    partition, rate_usd, rate_source = resolve_teacher_rate(settings, teacher, new_hours)
    fee_config, fee_source = resolve_fee_config(settings, teacher)
    if dry_run:
        return "created", None, new_hours, None

    invoice = _new_invoice(teacher, month, year, actor=actor, currency=get_settings().payout_currency)
    invoice.total_hours = new_hours
    invoice.rate_partition = partition
    invoice.rate_usd = rate_usd
    invoice.rate_source = rate_source
    invoice.exchange_rate = rate_record.rate
    invoice.exchange_rate_source = rate_record.source
    invoice.transfer_fee_model = fee_config.model
    invoice.transfer_fee_value = fee_config.value
    invoice.transfer_fee_source = fee_source
    session.add(invoice)
    _link_sessions(invoice, sessions)
    recalculate_invoice(invoice)
    _append_change(invoice, "created", actor=actor, new_value={"total_hours": new_hours})
    return "created", invoice, new_hours, None


def generate_monthly_invoices(
    session: Session,
    month: int,
    year: int,
    *,
    actor_id: str | None,
    teacher_ids: Iterable[int] | None = None,
    dry_run: bool = False,
    trigger: str = "manual",
) -> GenerationResults:
    """Create, extend or adjust salary invoices for every active teacher.

    Each teacher is committed on its own; a failure rolls back only that
    teacher and is reported in ``errors``.
    """

    validate_period(month, year)
    settings = get_global_settings(session)
    rate_record = get_exchange_rate(session, month, year)
    if rate_record is None:
        salary_generation_runs_total.labels(status="failed").inc()
        raise ConfigurationError(
            f"Exchange rate for {month:02d}/{year} is not set. Set it before generating invoices."
        )

    query = session.query(Teacher).filter(Teacher.is_active.is_(True))
    if teacher_ids:
        query = query.filter(Teacher.id.in_(list(teacher_ids)))
    candidates = [(teacher.id, teacher.full_name) for teacher in query.order_by(Teacher.id).all()]

    results = GenerationResults(month=month, year=year, dry_run=dry_run, total=len(candidates))
    started = perf_counter()
    LOGGER.info(
        "salary_generation_started",
        month=month,
        year=year,
        teachers=len(candidates),
        dry_run=dry_run,
        trigger=trigger,
    )

    for teacher_id, teacher_name in candidates:
        try:
            teacher = session.get(Teacher, teacher_id)
            outcome, invoice, hours, reason = _process_teacher(
                session,
                teacher,
                settings=settings,
                rate_record=rate_record,
                month=month,
                year=year,
                actor=actor_id,
                dry_run=dry_run,
            )
            if dry_run:
                session.rollback()
            else:
                session.commit()
        except Exception as exc:
            session.rollback()
            results.failed += 1
            results.errors.append(
                {"teacher_id": teacher_id, "teacher_name": teacher_name, "error": str(exc)}
            )
            salary_generation_teachers_total.labels(outcome="failed").inc()
            LOGGER.warning(
                "salary_generation_teacher_failed",
                teacher_id=teacher_id,
                month=month,
                year=year,
                error=str(exc),
            )
            continue

        setattr(results, outcome, getattr(results, outcome) + 1)
        salary_generation_teachers_total.labels(outcome=outcome).inc()
        if outcome == "skipped":
            results.skipped_details.append(
                {"teacher_id": teacher_id, "teacher_name": teacher_name, "reason": reason}
            )
        else:
            results.invoices.append(
                {
                    "teacher_id": teacher_id,
                    "teacher_name": teacher_name,
                    "invoice_id": invoice.id if invoice is not None else None,
                    "outcome": outcome,
                    "hours": hours,
                }
            )

    duration = perf_counter() - started
    salary_generation_seconds.labels(trigger=trigger).observe(duration)
    salary_generation_runs_total.labels(status="dry_run" if dry_run else "completed").inc()

    if not dry_run:
        record_audit(
            session,
            "job_run",
            entity_type="salary_generation",
            entity_id=f"{year}-{month:02d}",
            actor=actor_id,
            details={"trigger": trigger, **results.summary(), "errors": results.errors},
            success=results.failed == 0,
        )
        session.commit()
        notifications.notify_generation_summary(results.summary(), month=month, year=year)

    LOGGER.info(
        "salary_generation_completed",
        month=month,
        year=year,
        dry_run=dry_run,
        duration_seconds=round(duration, 3),
        **results.summary(),
    )
    return results


# Lifecycle -------------------------------------------------------------------


def _next_invoice_number(session: Session, month: int, year: int) -> str:
    prefix = f"TCH-{year:04d}-{month:02d}-"
    numbers = (
        session.query(TeacherInvoice.invoice_number)
        .filter(TeacherInvoice.invoice_number.like(f"{prefix}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:04d}"


def publish_invoice(session: Session, invoice_id: int, *, actor: str | None) -> TeacherInvoice:
    invoice = _get_invoice_or_404(session, invoice_id)
    before = _snapshot(invoice)
    old_status = _transition(invoice, "published")
    if not invoice.invoice_number:
        invoice.invoice_number = _next_invoice_number(session, invoice.month, invoice.year)
    invoice.published_at = datetime.now(timezone.utc)
    invoice.published_by = actor
    _append_change(
        invoice,
        "status_change",
        actor=actor,
        old_value={"status": old_status},
        new_value={"status": invoice.status, "invoice_number": invoice.invoice_number},
    )
    record_audit(
        session,
        "invoice_publish",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
    )
    _commit(session, invoice)
    notifications.notify_invoice_published(
        invoice.teacher.email, invoice.invoice_number, invoice.net_amount_egp
    )
    LOGGER.info("teacher_invoice_published", invoice_id=invoice.id, number=invoice.invoice_number)
    return invoice


def unpublish_invoice(session: Session, invoice_id: int, *, actor: str | None) -> TeacherInvoice:
    invoice = _get_invoice_or_404(session, invoice_id)
    if invoice.status != "published":
        raise InvoiceStateError("Only published invoices can be unpublished.")
    before = _snapshot(invoice)
    old_status = _transition(invoice, "draft")
    invoice.published_at = None
    invoice.published_by = None
    _append_change(
        invoice,
        "status_change",
        actor=actor,
        old_value={"status": old_status},
        new_value={"status": invoice.status},
    )
    record_audit(
        session,
        "invoice_unpublish",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
    )
    LOGGER.info("teacher_invoice_unpublished", invoice_id=invoice.id)
    return _commit(session, invoice)


def mark_invoice_paid(
    session: Session,
    invoice_id: int,
    *,
    actor: str | None,
    payment_method: str | None = None,
    payment_proof_url: str | None = None,
    transaction_id: str | None = None,
    notes: str | None = None,
) -> TeacherInvoice:
    invoice = _get_invoice_or_404(session, invoice_id)
    if invoice.status != "published":
        raise InvoiceStateError("Only published invoices can be marked as paid.")
    before = _snapshot(invoice)
    old_status = _transition(invoice, "paid")
    invoice.payment_method = payment_method or get_global_settings(session).default_payment_method
    invoice.payment_proof_url = payment_proof_url
    invoice.transaction_id = transaction_id
    invoice.payment_notes = notes
    invoice.paid_at = datetime.now(timezone.utc)
    invoice.paid_by = actor
    _append_change(
        invoice,
        "status_change",
        actor=actor,
        old_value={"status": old_status},
        new_value={"status": invoice.status, "payment_method": invoice.payment_method},
        note=notes,
    )
    record_audit(
        session,
        "invoice_payment",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
        details={"payment_method": invoice.payment_method, "transaction_id": transaction_id},
    )
    _commit(session, invoice)
    notifications.notify_invoice_paid(
        invoice.teacher.email, invoice.invoice_number, invoice.net_amount_egp
    )
    LOGGER.info("teacher_invoice_paid", invoice_id=invoice.id, method=invoice.payment_method)
    return invoice


def add_bonus(
    session: Session,
    invoice_id: int,
    *,
    actor: str | None,
    source: str,
    reason: str,
    amount_usd: float | None = None,
    gross_amount_usd: float | None = None,
    guardian_id: str | None = None,
) -> TeacherInvoice:
    """Attach a bonus; guardian bonuses keep 95% of the gross amount."""

    invoice = _get_invoice_or_404(session, invoice_id)
    ensure_mutable(invoice.status)
    if source not in BONUS_SOURCES:
        raise InvoiceValidationError(f"Bonus source must be one of: {', '.join(BONUS_SOURCES)}.")
    if not (reason or "").strip():
        raise InvoiceValidationError("Bonus reason is required.")

    if amount_usd is None:
        if gross_amount_usd is None:
            raise InvoiceValidationError("Bonus amount is required.")
        share = GUARDIAN_BONUS_SHARE if source == "guardian" else 1.0
        amount_usd = round_currency(gross_amount_usd * share)
    amount_usd = round_currency(amount_usd)
    if amount_usd <= 0:
        raise InvoiceValidationError("Bonus amount must be greater than zero.")

    before = _snapshot(invoice)
    old_bonuses = invoice.bonuses_usd
    bonus = InvoiceBonus(
        source=source,
        guardian_id=guardian_id,
        amount_usd=amount_usd,
        gross_amount_usd=gross_amount_usd,
        reason=reason.strip(),
        added_by=actor,
    )
    invoice.bonuses.append(bonus)
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "bonus_added",
        actor=actor,
        old_value={"bonuses_usd": old_bonuses},
        new_value={"bonuses_usd": invoice.bonuses_usd, "amount_usd": amount_usd, "source": source},
        note=bonus.reason,
    )
    record_audit(
        session,
        "bonus_add",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
        details={"source": source, "amount_usd": amount_usd, "guardian_id": guardian_id},
    )
    LOGGER.info("teacher_invoice_bonus_added", invoice_id=invoice.id, amount_usd=amount_usd)
    return _commit(session, invoice)


def remove_bonus(
    session: Session, invoice_id: int, bonus_id: int, *, actor: str | None
) -> TeacherInvoice:
    invoice = _get_invoice_or_404(session, invoice_id)
    ensure_mutable(invoice.status)
    bonus = next((item for item in invoice.bonuses if item.id == bonus_id), None)
    if bonus is None:
        raise InvoiceNotFoundError("Bonus not found")

    before = _snapshot(invoice)
    invoice.bonuses.remove(bonus)
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "bonus_removed",
        actor=actor,
        old_value={"bonus_id": bonus_id, "amount_usd": bonus.amount_usd},
        new_value={"bonuses_usd": invoice.bonuses_usd},
    )
    record_audit(
        session,
        "bonus_remove",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
    )
    LOGGER.info("teacher_invoice_bonus_removed", invoice_id=invoice.id, bonus_id=bonus_id)
    return _commit(session, invoice)


def add_extra(
    session: Session,
    invoice_id: int,
    *,
    actor: str | None,
    amount_usd: float,
    description: str,
    category: str = "other",
) -> TeacherInvoice:
    """Attach a signed adjustment; penalties carry negative amounts."""

    invoice = _get_invoice_or_404(session, invoice_id)
    ensure_mutable(invoice.status)
    if category not in EXTRA_CATEGORIES:
        raise InvoiceValidationError(
            f"Extra category must be one of: {', '.join(EXTRA_CATEGORIES)}."
        )
    if not (description or "").strip():
        raise InvoiceValidationError("Extra description is required.")
    amount_usd = round_currency(amount_usd)
    if amount_usd == 0:
        raise InvoiceValidationError("Extra amount cannot be zero.")

    before = _snapshot(invoice)
    extra = InvoiceExtra(
        category=category,
        amount_usd=amount_usd,
        description=description.strip(),
        added_by=actor,
    )
    invoice.extras.append(extra)
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "extra_added",
        actor=actor,
        new_value={"extras_usd": invoice.extras_usd, "amount_usd": amount_usd, "category": category},
        note=extra.description,
    )
    record_audit(
        session,
        "extra_add",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
    )
    LOGGER.info("teacher_invoice_extra_added", invoice_id=invoice.id, amount_usd=amount_usd)
    return _commit(session, invoice)


def remove_extra(
    session: Session, invoice_id: int, extra_id: int, *, actor: str | None
) -> TeacherInvoice:
    invoice = _get_invoice_or_404(session, invoice_id)
    ensure_mutable(invoice.status)
    extra = next((item for item in invoice.extras if item.id == extra_id), None)
    if extra is None:
        raise InvoiceNotFoundError("Extra not found")

    before = _snapshot(invoice)
    invoice.extras.remove(extra)
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "extra_removed",
        actor=actor,
        old_value={"extra_id": extra_id, "amount_usd": extra.amount_usd},
        new_value={"extras_usd": invoice.extras_usd},
    )
    record_audit(
        session,
        "extra_remove",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
    )
    LOGGER.info("teacher_invoice_extra_removed", invoice_id=invoice.id, extra_id=extra_id)
    return _commit(session, invoice)


def apply_overrides(
    session: Session, invoice_id: int, payload: Mapping[str, Any], *, actor: str | None
) -> TeacherInvoice:
    """Pin or clear admin overrides and recompute the invoice."""

    invoice = _get_invoice_or_404(session, invoice_id)
    ensure_mutable(invoice.status)
    changes = normalize_overrides(payload)

    before = _snapshot(invoice)
    old_overrides = dict(invoice.overrides or {})
    invoice.overrides = merge_overrides(old_overrides, changes)
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "override",
        actor=actor,
        old_value=old_overrides,
        new_value=dict(invoice.overrides),
    )
    record_audit(
        session,
        "invoice_override",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
        details={"overrides": dict(invoice.overrides)},
    )
    LOGGER.info("teacher_invoice_overrides_applied", invoice_id=invoice.id, fields=sorted(changes))
    return _commit(session, invoice)


def delete_invoice(session: Session, invoice_id: int, *, actor: str | None) -> TeacherInvoice:
    """Archive an unpaid invoice and release its classes for re-billing."""

    invoice = _get_invoice_or_404(session, invoice_id)
    before = _snapshot(invoice)
    old_status = _transition(invoice, "archived")
    invoice.deleted = True
    released = 0
    for class_session in list(invoice.class_sessions):
        class_session.invoice = None
        class_session.billed_at = None
        released += 1
    _append_change(
        invoice,
        "status_change",
        actor=actor,
        old_value={"status": old_status},
        new_value={"status": invoice.status, "released_classes": released},
        note="Invoice deleted",
    )
    record_audit(
        session,
        "invoice_delete",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
        details={"released_classes": released},
    )
    LOGGER.info("teacher_invoice_deleted", invoice_id=invoice.id, released_classes=released)
    return _commit(session, invoice)


# Refunds ---------------------------------------------------------------------


def _refund_basis(invoice: TeacherInvoice) -> tuple[float, float]:
    """Return ``(remaining_fee_usd, coverage_hours)`` for refund math."""

    fee_usd = to_usd(invoice.transfer_fee_egp, invoice.exchange_rate) or 0.0
    if "transfer_fee_egp" in (invoice.overrides or {}):
        # A pinned fee is not lowered by recalculation.
        fee_usd -= sum(refund.prorated_fee_usd for refund in invoice.refunds)
    remaining_fee = round_currency(max(fee_usd, 0.0))
    return remaining_fee, round_hours(invoice.coverage_hours)


def quote_invoice_refund(session: Session, invoice_id: int, refund_hours: float) -> RefundQuote:
    invoice = _get_invoice_or_404(session, invoice_id)
    fee_usd, coverage = _refund_basis(invoice)
    if refund_hours <= 0:
        raise RefundValidationError("Refund hours must be greater than zero.")
    if coverage <= 0:
        raise RefundValidationError("No covered hours remain to refund on this invoice.")
    if round_hours(refund_hours) - 0.0005 > coverage:
        raise RefundValidationError(f"Refund hours cannot exceed {coverage:g}h.")
    return quote_refund(refund_hours, invoice.rate_usd, fee_usd, coverage, invoice.total_hours)


def record_refund(
    session: Session,
    invoice_id: int,
    *,
    actor: str | None,
    refund_amount: float,
    refund_hours: float,
    reason: str,
    reference: str | None = None,
) -> TeacherInvoice:
    """Validate and store a refund against a paid invoice."""

    invoice = _get_invoice_or_404(session, invoice_id)
    if invoice.status != "paid":
        raise InvoiceStateError("Refunds can only be recorded on paid invoices.")
    if not (reason or "").strip():
        raise RefundValidationError("Refund reason is required.")

    fee_usd, coverage = _refund_basis(invoice)
    if coverage <= 0:
        raise RefundValidationError("No covered hours remain to refund on this invoice.")

    try:
        quote = validate_refund(
            refund_hours,
            refund_amount,
            invoice.rate_usd,
            fee_usd,
            coverage,
            invoice.total_hours,
            tolerance_cents=get_settings().refund_tolerance_cents,
        )
    except RefundValidationError:
        refunds_total.labels(status="rejected").inc()
        raise

    before = _snapshot(invoice)
    invoice.refunds.append(
        InvoiceRefund(
            refund_hours=quote.refund_hours,
            refund_amount_usd=quote.refund_amount,
            refund_amount_egp=to_target_currency(quote.refund_amount, invoice.exchange_rate),
            prorated_fee_usd=quote.prorated_fee,
            reason=reason.strip(),
            reference=reference,
            refunded_by=actor,
        )
    )
    invoice.refunded_hours = round_hours((invoice.refunded_hours or 0) + quote.refund_hours)
    invoice.refunded_amount_usd = round_currency(
        (invoice.refunded_amount_usd or 0) + quote.refund_amount
    )
    recalculate_invoice(invoice)
    _append_change(
        invoice,
        "refund",
        actor=actor,
        old_value={"refunded_hours": before["refunded_hours"]},
        new_value={
            "refunded_hours": invoice.refunded_hours,
            "refund_amount_usd": quote.refund_amount,
            "prorated_fee_usd": quote.prorated_fee,
        },
        note=reason.strip(),
    )
    record_audit(
        session,
        "invoice_refund",
        entity_type=INVOICE_ENTITY,
        entity_id=invoice.id,
        actor=actor,
        before=before,
        after=_snapshot(invoice),
        details={**quote.as_dict(), "reference": reference},
    )
    refunds_total.labels(status="recorded").inc()
    LOGGER.info(
        "teacher_invoice_refunded",
        invoice_id=invoice.id,
        refund_hours=quote.refund_hours,
        refund_amount=quote.refund_amount,
    )
    return _commit(session, invoice)


# Queries ---------------------------------------------------------------------


def get_invoice(session: Session, invoice_id: int) -> TeacherInvoice:
    return _get_invoice_or_404(session, invoice_id)


def get_invoice_audit(session: Session, invoice_id: int):
    invoice = _get_invoice_or_404(session, invoice_id)
    return list_audit_entries(session, entity_type=INVOICE_ENTITY, entity_id=invoice.id)


def list_invoices(
    session: Session,
    *,
    month: int | None = None,
    year: int | None = None,
    status: str | None = None,
    teacher_id: int | None = None,
    include_deleted: bool = False,
) -> list[TeacherInvoice]:
    query = session.query(TeacherInvoice)
    if not include_deleted:
        query = query.filter(TeacherInvoice.deleted.is_(False))
    if month is not None:
        query = query.filter(TeacherInvoice.month == month)
    if year is not None:
        query = query.filter(TeacherInvoice.year == year)
    if status:
        query = query.filter(TeacherInvoice.status == status)
    if teacher_id is not None:
        query = query.filter(TeacherInvoice.teacher_id == teacher_id)
    return query.order_by(
        TeacherInvoice.year.desc(), TeacherInvoice.month.desc(), TeacherInvoice.id.asc()
    ).all()


def list_teacher_invoices(session: Session, teacher_id: int) -> list[TeacherInvoice]:
    """Invoices a teacher may see: issued ones only, never deleted."""

    return (
        session.query(TeacherInvoice)
        .filter(
            TeacherInvoice.teacher_id == teacher_id,
            TeacherInvoice.status.in_(TEACHER_VISIBLE_STATUSES),
            TeacherInvoice.deleted.is_(False),
        )
        .order_by(TeacherInvoice.year.desc(), TeacherInvoice.month.desc(), TeacherInvoice.id.desc())
        .all()
    )


def teacher_ytd_summary(session: Session, teacher_id: int, year: int) -> dict[str, Any]:
    teacher = session.get(Teacher, teacher_id)
    if teacher is None:
        raise InvoiceNotFoundError("Teacher not found")

    invoices = [
        invoice
        for invoice in list_teacher_invoices(session, teacher_id)
        if invoice.year == year and invoice.status in ("published", "paid")
    ]
    paid = [invoice for invoice in invoices if invoice.status == "paid"]
    pending = [invoice for invoice in invoices if invoice.status == "published"]

    if invoices:
        latest = invoices[0]
        partition, rate = latest.rate_partition, latest.rate_usd
    else:
        partition, rate, _ = resolve_teacher_rate(get_global_settings(session), teacher, 0)

    return {
        "teacher_id": teacher_id,
        "year": year,
        "total_hours": round_hours(sum(invoice.total_hours for invoice in invoices)),
        "total_paid_usd": round_currency(sum(invoice.total_usd for invoice in paid)),
        "total_paid_egp": round_currency(sum(invoice.net_amount_egp for invoice in paid)),
        "paid_count": len(paid),
        "pending_count": len(pending),
        "current_partition": partition,
        "current_rate_usd": rate,
    }


__all__ = [
    "GenerationResults",
    "add_bonus",
    "add_extra",
    "apply_overrides",
    "delete_invoice",
    "generate_monthly_invoices",
    "get_invoice",
    "get_invoice_audit",
    "list_invoices",
    "list_teacher_invoices",
    "mark_invoice_paid",
    "month_bounds",
    "publish_invoice",
    "quote_invoice_refund",
    "record_refund",
    "remove_bonus",
    "remove_extra",
    "teacher_ytd_summary",
    "unpublish_invoice",
]
