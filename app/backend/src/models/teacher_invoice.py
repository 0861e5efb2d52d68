"""Teacher salary invoice models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .class_session import ClassSession
    from .teacher import Teacher

INVOICE_STATUSES: tuple[str, ...] = ("draft", "published", "paid", "archived")
BONUS_SOURCES: tuple[str, ...] = ("guardian", "admin")
EXTRA_CATEGORIES: tuple[str, ...] = ("reimbursement", "bonus", "penalty", "other")


class TeacherInvoice(TimestampMixin, Base):
    """Monthly salary invoice for a single teacher.

    Rate, exchange rate and transfer fee are snapshotted when the invoice is
    created so later settings changes never alter an issued figure.
    """

    __tablename__ = "teacher_invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    month: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    invoice_number: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="EGP")

    is_adjustment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    adjustment_for_id: Mapped[int | None] = mapped_column(
        ForeignKey("teacher_invoices.id"), nullable=True
    )
    adjustment_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    total_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    rate_partition: Mapped[str | None] = mapped_column(String(120), nullable=True)
    rate_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    rate_source: Mapped[str] = mapped_column(String(20), nullable=False, default="system")

    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    exchange_rate_source: Mapped[str | None] = mapped_column(String(120), nullable=True)

    transfer_fee_model: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    transfer_fee_value: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    transfer_fee_source: Mapped[str] = mapped_column(String(20), nullable=False, default="system")

    gross_amount_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    bonuses_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    extras_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    gross_amount_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    bonuses_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    extras_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    transfer_fee_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    net_amount_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    refunded_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    refunded_amount_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    refunded_amount_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    overrides: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_proof_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    teacher: Mapped["Teacher"] = relationship("Teacher", back_populates="invoices")
    class_sessions: Mapped[list["ClassSession"]] = relationship(
        "ClassSession", back_populates="invoice"
    )
    bonuses: Mapped[list["InvoiceBonus"]] = relationship(
        "InvoiceBonus",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceBonus.id",
    )
    extras: Mapped[list["InvoiceExtra"]] = relationship(
        "InvoiceExtra",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceExtra.id",
    )
    change_history: Mapped[list["InvoiceChangeEntry"]] = relationship(
        "InvoiceChangeEntry",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceChangeEntry.id",
    )
    refunds: Mapped[list["InvoiceRefund"]] = relationship(
        "InvoiceRefund",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceRefund.id",
    )

    @property
    def coverage_hours(self) -> float:
        """Hours still covered by the invoice after refunds."""

        return max((self.total_hours or 0) - (self.refunded_hours or 0), 0.0)


class InvoiceBonus(Base):
    __tablename__ = "teacher_invoice_bonuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("teacher_invoices.id"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="admin")
    guardian_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount_usd: Mapped[float] = mapped_column(Float, nullable=False)
    gross_amount_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    added_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    invoice: Mapped[TeacherInvoice] = relationship("TeacherInvoice", back_populates="bonuses")


class InvoiceExtra(Base):
    __tablename__ = "teacher_invoice_extras"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("teacher_invoices.id"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="other")
    amount_usd: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    added_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    invoice: Mapped[TeacherInvoice] = relationship("TeacherInvoice", back_populates="extras")


class InvoiceChangeEntry(Base):
    """Append-only change history row."""

    __tablename__ = "teacher_invoice_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("teacher_invoices.id"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    invoice: Mapped[TeacherInvoice] = relationship(
        "TeacherInvoice", back_populates="change_history"
    )


class InvoiceRefund(Base):
    __tablename__ = "teacher_invoice_refunds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("teacher_invoices.id"), nullable=False, index=True
    )
    refund_hours: Mapped[float] = mapped_column(Float, nullable=False)
    refund_amount_usd: Mapped[float] = mapped_column(Float, nullable=False)
    refund_amount_egp: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    prorated_fee_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refunded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refunded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    invoice: Mapped[TeacherInvoice] = relationship("TeacherInvoice", back_populates="refunds")


__all__ = [
    "BONUS_SOURCES",
    "EXTRA_CATEGORIES",
    "INVOICE_STATUSES",
    "InvoiceBonus",
    "InvoiceChangeEntry",
    "InvoiceExtra",
    "InvoiceRefund",
    "TeacherInvoice",
]
