"""Teacher salary invoice schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class InvoiceBonusRead(BaseModel):
    id: int
    source: str
    guardian_id: str | None = None
    amount_usd: float
    gross_amount_usd: float | None = None
    reason: str
    added_by: str | None = None
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceExtraRead(BaseModel):
    id: int
    category: str
    amount_usd: float
    description: str
    added_by: str | None = None
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceChangeEntryRead(BaseModel):
    action: str
    old_value: Any = None
    new_value: Any = None
    changed_by: str | None = None
    changed_at: datetime
    note: str | None = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceRefundRead(BaseModel):
    id: int
    refund_hours: float
    refund_amount_usd: float
    refund_amount_egp: float
    prorated_fee_usd: float
    reason: str
    reference: str | None = None
    refunded_by: str | None = None
    refunded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TeacherInvoiceSummary(BaseModel):
    id: int
    teacher_id: int
    month: int
    year: int
    invoice_number: str | None = None
    status: str
    currency: str
    is_adjustment: bool
    total_hours: float
    rate_usd: float
    total_usd: float
    total_egp: float
    net_amount_egp: float
    deleted: bool

    model_config = ConfigDict(from_attributes=True)


class TeacherInvoiceRead(TeacherInvoiceSummary):
    adjustment_for_id: int | None = None
    adjustment_type: str | None = None
    rate_partition: str | None = None
    rate_source: str
    exchange_rate: float
    exchange_rate_source: str | None = None
    transfer_fee_model: str
    transfer_fee_value: float
    transfer_fee_source: str
    gross_amount_usd: float
    bonuses_usd: float
    extras_usd: float
    gross_amount_egp: float
    bonuses_egp: float
    extras_egp: float
    transfer_fee_egp: float
    refunded_hours: float
    refunded_amount_usd: float
    refunded_amount_egp: float
    overrides: dict[str, float] = {}
    payment_method: str | None = None
    payment_proof_url: str | None = None
    transaction_id: str | None = None
    payment_notes: str | None = None
    paid_at: datetime | None = None
    paid_by: str | None = None
    published_at: datetime | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime
    updated_at: datetime
    bonuses: list[InvoiceBonusRead] = []
    extras: list[InvoiceExtraRead] = []
    refunds: list[InvoiceRefundRead] = []
    change_history: list[InvoiceChangeEntryRead] = []


class InvoiceEnvelope(BaseModel):
    success: bool = True
    message: str
    invoice: TeacherInvoiceRead


class InvoiceListEnvelope(BaseModel):
    success: bool = True
    invoices: list[TeacherInvoiceSummary]


class AuditEntryRead(BaseModel):
    id: int
    action: str
    actor: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    details: dict[str, Any] | None = None
    success: bool
    error_message: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkPaidRequest(BaseModel):
    payment_method: str | None = Field(default=None, alias="paymentMethod")
    payment_proof_url: str | None = Field(default=None, alias="paymentProofUrl")
    transaction_id: str | None = Field(default=None, alias="transactionId")
    notes: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class BonusCreate(BaseModel):
    source: Literal["guardian", "admin"] = "admin"
    amount_usd: float | None = Field(default=None, alias="amountUSD")
    gross_amount_usd: float | None = Field(default=None, alias="grossAmountUSD")
    guardian_id: str | None = Field(default=None, alias="guardianId")
    reason: str = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class ExtraCreate(BaseModel):
    amount_usd: float = Field(alias="amountUSD")
    description: str = Field(min_length=1)
    category: Literal["reimbursement", "bonus", "penalty", "other"] = "other"

    model_config = ConfigDict(populate_by_name=True)


class OverridesRequest(BaseModel):
    overrides: dict[str, Any]


class RefundRequest(BaseModel):
    refund_amount: float = Field(alias="refundAmount")
    refund_hours: float = Field(alias="refundHours")
    reason: str = Field(min_length=1)
    refund_reference: str | None = Field(default=None, alias="refundReference")

    model_config = ConfigDict(populate_by_name=True)


class RefundQuoteRequest(BaseModel):
    refund_hours: float = Field(alias="refundHours")

    model_config = ConfigDict(populate_by_name=True)


class RefundQuoteRead(BaseModel):
    refund_hours: float
    refund_amount: float
    base_amount: float
    prorated_fee: float
    expected_amount: float
    coverage_hours: float


class TeacherYtdSummary(BaseModel):
    teacher_id: int
    year: int
    total_hours: float
    total_paid_usd: float
    total_paid_egp: float
    paid_count: int
    pending_count: int
    current_partition: str | None = None
    current_rate_usd: float
