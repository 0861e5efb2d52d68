"""Payroll settings: rate tiers, transfer fee defaults, exchange rates and per-teacher rates."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import structlog
from sqlalchemy.orm import Session

from app.backend.src.models import (
    GLOBAL_SETTINGS_ID,
    InvoiceChangeEntry,
    MonthlyExchangeRate,
    RatePartition,
    SalarySettings,
    Teacher,
    TeacherInvoice,
)

from .accumulator import build_change_entry, recalculate_invoice
from .audit import record_audit
from .exceptions import ConfigurationError, InvoiceNotFoundError, InvoiceValidationError
from .rates import OPEN_ENDED_MAX_HOURS, RateTier, resolve_tier, validate_partitions
from .transfer_fees import FEE_MODELS, TransferFeeConfig

LOGGER = structlog.get_logger(__name__)

MAX_EXCHANGE_RATE = 1000.0

DEFAULT_RATE_PARTITIONS: tuple[tuple[str, float, float, float], ...] = (
    ("0-60 hours", 0, 60, 3.00),
    ("60.01-75 hours", 60.01, 75, 3.25),
    ("75.01-90 hours", 75.01, 90, 3.50),
    ("90.01-110 hours", 90.01, 110, 3.75),
    ("110.01-130 hours", 110.01, 130, 4.00),
    ("130.01-150 hours", 130.01, 150, 4.25),
    ("150+ hours", 150.01, OPEN_ENDED_MAX_HOURS, 4.50),
)
DEFAULT_TRANSFER_FEE = TransferFeeConfig(model="flat", value=25.0)
CUSTOM_PARTITION = "custom"


def get_global_settings(session: Session) -> SalarySettings:
    """Return the settings singleton, creating it with defaults on first use."""

    settings = session.get(SalarySettings, GLOBAL_SETTINGS_ID)
    if settings is not None:
        return settings

    settings = SalarySettings(
        id=GLOBAL_SETTINGS_ID,
        default_transfer_fee_model=DEFAULT_TRANSFER_FEE.model,
        default_transfer_fee_value=DEFAULT_TRANSFER_FEE.value,
    )
    settings.rate_partitions = [
        RatePartition(name=name, min_hours=low, max_hours=high, rate_usd=rate)
        for name, low, high, rate in DEFAULT_RATE_PARTITIONS
    ]
    session.add(settings)
    session.commit()
    session.refresh(settings)
    LOGGER.info("salary_settings_created", partitions=len(settings.rate_partitions))
    return settings


def rate_tiers(settings: SalarySettings) -> list[RateTier]:
    return [
        RateTier(
            name=partition.name,
            min_hours=partition.min_hours,
            max_hours=partition.max_hours,
            rate_usd=partition.rate_usd,
        )
        for partition in settings.rate_partitions
        if partition.is_active
    ]


def resolve_teacher_rate(
    settings: SalarySettings, teacher: Teacher, hours: float
) -> tuple[str, float, str]:
    """Return ``(partition, rate_usd, source)`` for a teacher's monthly hours."""

    if teacher.custom_rate_usd:
        return CUSTOM_PARTITION, teacher.custom_rate_usd, "custom"
    tier = resolve_tier(hours, rate_tiers(settings))
    return tier.name, tier.rate_usd, "system"


def resolve_fee_config(settings: SalarySettings, teacher: Teacher) -> tuple[TransferFeeConfig, str]:
    if teacher.custom_transfer_fee_model:
        return (
            TransferFeeConfig(
                teacher.custom_transfer_fee_model, teacher.custom_transfer_fee_value or 0.0
            ),
            "custom",
        )
    return (
        TransferFeeConfig(settings.default_transfer_fee_model, settings.default_transfer_fee_value),
        "system",
    )


def _partition_snapshot(settings: SalarySettings) -> list[dict[str, Any]]:
    return [
        {
            "name": partition.name,
            "min_hours": partition.min_hours,
            "max_hours": partition.max_hours,
            "rate_usd": partition.rate_usd,
        }
        for partition in settings.rate_partitions
    ]


def update_rate_partitions(
    session: Session, partitions: Iterable[Mapping[str, Any]], *, actor: str | None
) -> SalarySettings:
    """Replace the rate table after validating contiguity and bounds."""

    tiers = [
        RateTier(
            name=str(item.get("name") or f"{item['min_hours']}-{item['max_hours']} hours"),
            min_hours=float(item["min_hours"]),
            max_hours=float(item["max_hours"]),
            rate_usd=float(item["rate_usd"]),
        )
        for item in partitions
    ]
    errors = validate_partitions(tiers)
    if errors:
        raise ConfigurationError("Invalid rate partitions: " + " ".join(errors))

    settings = get_global_settings(session)
    before = _partition_snapshot(settings)
    settings.rate_partitions.clear()
    session.flush()
    settings.rate_partitions.extend(
        RatePartition(
            name=tier.name,
            min_hours=tier.min_hours,
            max_hours=tier.max_hours,
            rate_usd=tier.rate_usd,
        )
        for tier in sorted(tiers, key=lambda tier: tier.min_hours)
    )
    settings.updated_by = actor
    record_audit(
        session,
        "rate_update",
        entity_type="salary_settings",
        entity_id=settings.id,
        actor=actor,
        before={"partitions": before},
        after={"partitions": _partition_snapshot(settings)},
    )
    session.commit()
    session.refresh(settings)
    LOGGER.info("rate_partitions_updated", partitions=len(tiers), actor=actor)
    return settings


def _validate_fee(model: str, value: float) -> None:
    if model not in FEE_MODELS:
        raise InvoiceValidationError(
            f"Transfer fee model must be one of: {', '.join(FEE_MODELS)}."
        )
    if value is None or value < 0:
        raise InvoiceValidationError("Transfer fee value must be zero or positive.")
    if model == "percentage" and value > 100:
        raise InvoiceValidationError("Percentage transfer fee cannot exceed 100.")


def update_default_transfer_fee(
    session: Session, model: str, value: float, *, actor: str | None
) -> SalarySettings:
    _validate_fee(model, value)
    settings = get_global_settings(session)
    before = {
        "model": settings.default_transfer_fee_model,
        "value": settings.default_transfer_fee_value,
    }
    settings.default_transfer_fee_model = model
    settings.default_transfer_fee_value = float(value)
    settings.updated_by = actor
    record_audit(
        session,
        "settings_update",
        entity_type="salary_settings",
        entity_id=settings.id,
        actor=actor,
        before={"transfer_fee": before},
        after={"transfer_fee": {"model": model, "value": float(value)}},
    )
    session.commit()
    session.refresh(settings)
    LOGGER.info("default_transfer_fee_updated", model=model, value=value, actor=actor)
    return settings


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise InvoiceValidationError("Month must be between 1 and 12.")
    if not 2000 <= year <= 2100:
        raise InvoiceValidationError("Year must be between 2000 and 2100.")


def get_exchange_rate(session: Session, month: int, year: int) -> MonthlyExchangeRate | None:
    return (
        session.query(MonthlyExchangeRate)
        .filter(MonthlyExchangeRate.month == month, MonthlyExchangeRate.year == year)
        .one_or_none()
    )


def _get_exchange_rate_or_404(session: Session, month: int, year: int) -> MonthlyExchangeRate:
    record = get_exchange_rate(session, month, year)
    if record is None:
        raise InvoiceNotFoundError(f"No exchange rate set for {month:02d}/{year}.")
    return record


def list_exchange_rates(session: Session, year: int | None = None) -> list[MonthlyExchangeRate]:
    query = session.query(MonthlyExchangeRate)
    if year is not None:
        query = query.filter(MonthlyExchangeRate.year == year)
    return query.order_by(MonthlyExchangeRate.year.desc(), MonthlyExchangeRate.month.desc()).all()


def set_exchange_rate(
    session: Session,
    month: int,
    year: int,
    rate: float,
    *,
    actor: str | None,
    source: str | None = None,
    notes: str | None = None,
) -> tuple[MonthlyExchangeRate, int]:
    """Create or update a month's rate and refresh unpaid invoices of that month.

    Adjustment invoices keep the snapshot of the paid invoice they extend.

    Returns the rate record and the number of invoices whose snapshot changed.
    """

    validate_period(month, year)
    if rate is None or rate <= 0 or rate > MAX_EXCHANGE_RATE:
        raise InvoiceValidationError(
            f"Exchange rate must be greater than 0 and at most {MAX_EXCHANGE_RATE:g}."
        )

    record = get_exchange_rate(session, month, year)
    before = None
    if record is None:
        record = MonthlyExchangeRate(month=month, year=year, rate=rate)
        session.add(record)
    else:
        if record.locked:
            raise ConfigurationError(
                f"Exchange rate for {month:02d}/{year} is locked and cannot be changed."
            )
        before = {"rate": record.rate, "source": record.source}

    record.rate = float(rate)
    record.source = source
    record.notes = notes
    record.set_by = actor
    record.set_at = datetime.now(timezone.utc)

    refreshed = 0
    invoices = (
        session.query(TeacherInvoice)
        .filter(
            TeacherInvoice.month == month,
            TeacherInvoice.year == year,
            TeacherInvoice.status.in_(("draft", "published")),
            TeacherInvoice.deleted.is_(False),
            TeacherInvoice.is_adjustment.is_(False),
        )
        .all()
    )
    for invoice in invoices:
        if invoice.exchange_rate == record.rate:
            continue
        entry = build_change_entry(
            "exchange_rate_refresh",
            changed_by=actor,
            old_value={"exchange_rate": invoice.exchange_rate},
            new_value={"exchange_rate": record.rate},
        )
        invoice.exchange_rate = record.rate
        invoice.exchange_rate_source = source
        recalculate_invoice(invoice)
        _append_history(invoice, entry)
        refreshed += 1

    record_audit(
        session,
        "exchange_rate_set",
        entity_type="exchange_rate",
        entity_id=f"{year}-{month:02d}",
        actor=actor,
        before=before,
        after={"rate": record.rate, "source": source},
        details={"refreshed_invoices": refreshed},
    )
    session.commit()
    session.refresh(record)
    LOGGER.info(
        "exchange_rate_set",
        month=month,
        year=year,
        rate=record.rate,
        refreshed_invoices=refreshed,
        actor=actor,
    )
    return record, refreshed


def _append_history(invoice: TeacherInvoice, entry: dict[str, Any]) -> None:
    invoice.change_history.append(InvoiceChangeEntry(**entry))


def lock_exchange_rate(
    session: Session, month: int, year: int, *, actor: str | None
) -> MonthlyExchangeRate:
    record = _get_exchange_rate_or_404(session, month, year)
    record.locked = True
    record.locked_by = actor
    record.locked_at = datetime.now(timezone.utc)
    record_audit(
        session,
        "exchange_rate_lock",
        entity_type="exchange_rate",
        entity_id=f"{year}-{month:02d}",
        actor=actor,
    )
    session.commit()
    session.refresh(record)
    LOGGER.info("exchange_rate_locked", month=month, year=year, actor=actor)
    return record


def unlock_exchange_rate(
    session: Session, month: int, year: int, *, actor: str | None
) -> MonthlyExchangeRate:
    record = _get_exchange_rate_or_404(session, month, year)
    record.locked = False
    record.locked_by = None
    record.locked_at = None
    record_audit(
        session,
        "exchange_rate_unlock",
        entity_type="exchange_rate",
        entity_id=f"{year}-{month:02d}",
        actor=actor,
    )
    session.commit()
    session.refresh(record)
    LOGGER.info("exchange_rate_unlocked", month=month, year=year, actor=actor)
    return record


def _get_teacher_or_404(session: Session, teacher_id: int) -> Teacher:
    teacher = session.get(Teacher, teacher_id)
    if teacher is None:
        raise InvoiceNotFoundError("Teacher not found")
    return teacher


def set_custom_rate(
    session: Session,
    teacher_id: int,
    rate_usd: float | None,
    *,
    reason: str | None = None,
    actor: str | None,
) -> Teacher:
    """Set or clear (``rate_usd=None``) a teacher's fixed hourly rate."""

    teacher = _get_teacher_or_404(session, teacher_id)
    if rate_usd is not None and rate_usd <= 0:
        raise InvoiceValidationError("Custom rate must be greater than zero.")

    before = {"rate_usd": teacher.custom_rate_usd, "reason": teacher.custom_rate_reason}
    teacher.custom_rate_usd = rate_usd
    teacher.custom_rate_reason = reason if rate_usd is not None else None
    record_audit(
        session,
        "rate_update",
        entity_type="teacher",
        entity_id=teacher.id,
        actor=actor,
        before=before,
        after={"rate_usd": rate_usd, "reason": teacher.custom_rate_reason},
    )
    session.commit()
    session.refresh(teacher)
    LOGGER.info("teacher_custom_rate_set", teacher_id=teacher.id, rate_usd=rate_usd, actor=actor)
    return teacher


def set_custom_transfer_fee(
    session: Session,
    teacher_id: int,
    model: str | None,
    value: float | None = None,
    *,
    actor: str | None,
) -> Teacher:
    """Set or clear (``model=None``) a teacher's transfer fee override."""

    teacher = _get_teacher_or_404(session, teacher_id)
    if model is not None:
        _validate_fee(model, value if value is not None else 0.0)

    before = {
        "model": teacher.custom_transfer_fee_model,
        "value": teacher.custom_transfer_fee_value,
    }
    teacher.custom_transfer_fee_model = model
    teacher.custom_transfer_fee_value = (value or 0.0) if model is not None else None
    record_audit(
        session,
        "settings_update",
        entity_type="teacher",
        entity_id=teacher.id,
        actor=actor,
        before={"transfer_fee": before},
        after={
            "transfer_fee": {
                "model": teacher.custom_transfer_fee_model,
                "value": teacher.custom_transfer_fee_value,
            }
        },
    )
    session.commit()
    session.refresh(teacher)
    LOGGER.info(
        "teacher_custom_transfer_fee_set", teacher_id=teacher.id, model=model, actor=actor
    )
    return teacher


__all__ = [
    "CUSTOM_PARTITION",
    "DEFAULT_RATE_PARTITIONS",
    "get_exchange_rate",
    "get_global_settings",
    "list_exchange_rates",
    "lock_exchange_rate",
    "rate_tiers",
    "resolve_fee_config",
    "resolve_teacher_rate",
    "set_custom_rate",
    "set_custom_transfer_fee",
    "set_exchange_rate",
    "unlock_exchange_rate",
    "update_default_transfer_fee",
    "update_rate_partitions",
    "validate_period",
]
