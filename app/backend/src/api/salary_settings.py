"""Payroll settings, exchange-rate and per-teacher rate endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.backend.src.core.security import CurrentUser, require_admin_user
from ..db import get_session_dependency
from app.backend.src.models import MonthlyExchangeRate, SalarySettings, Teacher
from app.backend.src.schemas.salary_settings import (
    CustomRateUpdate,
    CustomTransferFeeUpdate,
    ExchangeRateCreate,
    ExchangeRateEnvelope,
    ExchangeRateRead,
    RatePartitionsUpdate,
    SalarySettingsRead,
    SettingsEnvelope,
    TeacherEnvelope,
    TeacherRateRead,
    TransferFeeUpdate,
)
from app.backend.src.services import salary_settings as settings_service

LOGGER = structlog.get_logger(__name__)

router = APIRouter(prefix="/teacher-salary/admin", tags=["teacher-salary-settings"])


def _settings_envelope(settings: SalarySettings, message: str) -> SettingsEnvelope:
    return SettingsEnvelope(
        success=True,
        message=message,
        settings=SalarySettingsRead.model_validate(settings),
    )


def _rate_envelope(
    record: MonthlyExchangeRate, message: str, refreshed: int = 0
) -> ExchangeRateEnvelope:
    return ExchangeRateEnvelope(
        success=True,
        message=message,
        exchange_rate=ExchangeRateRead.model_validate(record),
        refreshed_invoices=refreshed,
    )


def _teacher_envelope(teacher: Teacher, message: str) -> TeacherEnvelope:
    return TeacherEnvelope(
        success=True, message=message, teacher=TeacherRateRead.model_validate(teacher)
    )


@router.get("/settings", response_model=SettingsEnvelope)
def get_settings(
    session: Session = Depends(get_session_dependency),
    _: CurrentUser = Depends(require_admin_user),
) -> SettingsEnvelope:
    settings = settings_service.get_global_settings(session)
    return _settings_envelope(settings, "Settings retrieved")


@router.put("/settings/rate-partitions", response_model=SettingsEnvelope)
def update_rate_partitions(
    payload: RatePartitionsUpdate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> SettingsEnvelope:
    settings = settings_service.update_rate_partitions(
        session,
        [partition.model_dump() for partition in payload.rate_partitions],
        actor=user.id,
    )
    return _settings_envelope(settings, "Rate partitions updated")


@router.put("/settings/transfer-fee", response_model=SettingsEnvelope)
def update_transfer_fee(
    payload: TransferFeeUpdate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> SettingsEnvelope:
    settings = settings_service.update_default_transfer_fee(
        session, payload.model, payload.value, actor=user.id
    )
    return _settings_envelope(settings, "Default transfer fee updated")


@router.get("/exchange-rates", response_model=list[ExchangeRateRead])
def list_exchange_rates(
    year: int | None = Query(default=None),
    session: Session = Depends(get_session_dependency),
    _: CurrentUser = Depends(require_admin_user),
) -> list[ExchangeRateRead]:
    records = settings_service.list_exchange_rates(session, year)
    return [ExchangeRateRead.model_validate(record) for record in records]


@router.post("/exchange-rates", response_model=ExchangeRateEnvelope)
def set_exchange_rate(
    payload: ExchangeRateCreate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> ExchangeRateEnvelope:
    record, refreshed = settings_service.set_exchange_rate(
        session,
        payload.month,
        payload.year,
        payload.rate,
        actor=user.id,
        source=payload.source,
        notes=payload.notes,
    )
    return _rate_envelope(
        record,
        f"Exchange rate saved for {payload.month:02d}/{payload.year}",
        refreshed,
    )


@router.post("/exchange-rates/{year}/{month}/lock", response_model=ExchangeRateEnvelope)
def lock_exchange_rate(
    year: int,
    month: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> ExchangeRateEnvelope:
    record = settings_service.lock_exchange_rate(session, month, year, actor=user.id)
    return _rate_envelope(record, "Exchange rate locked")


@router.post("/exchange-rates/{year}/{month}/unlock", response_model=ExchangeRateEnvelope)
def unlock_exchange_rate(
    year: int,
    month: int,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> ExchangeRateEnvelope:
    record = settings_service.unlock_exchange_rate(session, month, year, actor=user.id)
    return _rate_envelope(record, "Exchange rate unlocked")


@router.put("/teachers/{teacher_id}/custom-rate", response_model=TeacherEnvelope)
def set_custom_rate(
    teacher_id: int,
    payload: CustomRateUpdate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> TeacherEnvelope:
    teacher = settings_service.set_custom_rate(
        session, teacher_id, payload.rate_usd, reason=payload.reason, actor=user.id
    )
    message = "Custom rate cleared" if payload.rate_usd is None else "Custom rate saved"
    return _teacher_envelope(teacher, message)


@router.put("/teachers/{teacher_id}/custom-transfer-fee", response_model=TeacherEnvelope)
def set_custom_transfer_fee(
    teacher_id: int,
    payload: CustomTransferFeeUpdate,
    session: Session = Depends(get_session_dependency),
    user: CurrentUser = Depends(require_admin_user),
) -> TeacherEnvelope:
    teacher = settings_service.set_custom_transfer_fee(
        session, teacher_id, payload.model, payload.value, actor=user.id
    )
    message = (
        "Custom transfer fee cleared" if payload.model is None else "Custom transfer fee saved"
    )
    return _teacher_envelope(teacher, message)
