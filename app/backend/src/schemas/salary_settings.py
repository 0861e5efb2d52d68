"""Payroll settings, exchange-rate and custom-rate schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FeeModel = Literal["flat", "percentage", "none"]


class RatePartitionIn(BaseModel):
    name: str | None = None
    min_hours: float = Field(alias="minHours")
    max_hours: float = Field(alias="maxHours")
    rate_usd: float = Field(alias="rateUSD")

    model_config = ConfigDict(populate_by_name=True)


class RatePartitionRead(BaseModel):
    name: str
    min_hours: float
    max_hours: float
    rate_usd: float
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RatePartitionsUpdate(BaseModel):
    rate_partitions: list[RatePartitionIn] = Field(alias="ratePartitions", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class TransferFeeUpdate(BaseModel):
    model: FeeModel
    value: float = Field(default=0, ge=0)


class SalarySettingsRead(BaseModel):
    id: str
    rate_model: str
    default_transfer_fee_model: str
    default_transfer_fee_value: float
    default_payment_method: str
    auto_generate_enabled: bool
    auto_generate_day: int
    updated_by: str | None = None
    rate_partitions: list[RatePartitionRead] = []

    model_config = ConfigDict(from_attributes=True)


class SettingsEnvelope(BaseModel):
    success: bool = True
    message: str
    settings: SalarySettingsRead


class ExchangeRateCreate(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    rate: float = Field(gt=0, le=1000)
    source: str | None = None
    notes: str | None = None


class ExchangeRateRead(BaseModel):
    id: int
    month: int
    year: int
    rate: float
    source: str | None = None
    notes: str | None = None
    set_by: str | None = None
    set_at: datetime | None = None
    locked: bool
    locked_by: str | None = None
    locked_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ExchangeRateEnvelope(BaseModel):
    success: bool = True
    message: str
    exchange_rate: ExchangeRateRead = Field(alias="exchangeRate")
    refreshed_invoices: int = Field(default=0, alias="refreshedInvoices")

    model_config = ConfigDict(populate_by_name=True)


class CustomRateUpdate(BaseModel):
    rate_usd: float | None = Field(default=None, alias="rateUSD", gt=0)
    reason: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class CustomTransferFeeUpdate(BaseModel):
    model: FeeModel | None = None
    value: float | None = Field(default=None, ge=0)


class TeacherRateRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    custom_rate_usd: float | None = None
    custom_rate_reason: str | None = None
    custom_transfer_fee_model: str | None = None
    custom_transfer_fee_value: float | None = None

    model_config = ConfigDict(from_attributes=True)


class TeacherEnvelope(BaseModel):
    success: bool = True
    message: str
    teacher: TeacherRateRead
