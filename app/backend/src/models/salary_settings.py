"""Global salary settings and rate partitions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

GLOBAL_SETTINGS_ID = "global"


class SalarySettings(TimestampMixin, Base):
    """Singleton row holding payroll defaults."""

    __tablename__ = "salary_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=GLOBAL_SETTINGS_ID)
    rate_model: Mapped[str] = mapped_column(String(20), nullable=False, default="tiered")
    default_transfer_fee_model: Mapped[str] = mapped_column(
        String(20), nullable=False, default="flat"
    )
    default_transfer_fee_value: Mapped[float] = mapped_column(Float, nullable=False, default=25)
    default_payment_method: Mapped[str] = mapped_column(
        String(50), nullable=False, default="bank_transfer"
    )
    auto_generate_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_generate_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    rate_partitions: Mapped[list["RatePartition"]] = relationship(
        "RatePartition",
        back_populates="settings",
        cascade="all, delete-orphan",
        order_by="RatePartition.min_hours",
    )


class RatePartition(Base):
    """One hour tier of the rate table."""

    __tablename__ = "salary_rate_partitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    settings_id: Mapped[str] = mapped_column(
        ForeignKey("salary_settings.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    min_hours: Mapped[float] = mapped_column(Float, nullable=False)
    max_hours: Mapped[float] = mapped_column(Float, nullable=False)
    rate_usd: Mapped[float] = mapped_column(Float, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    settings: Mapped[SalarySettings] = relationship(
        "SalarySettings", back_populates="rate_partitions"
    )


class MonthlyExchangeRate(TimestampMixin, Base):
    """USD to payout-currency rate for one month."""

    __tablename__ = "monthly_exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[str | None] = mapped_column(String(120), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    set_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("month", "year", name="uq_exchange_rate_period"),)


__all__ = ["GLOBAL_SETTINGS_ID", "MonthlyExchangeRate", "RatePartition", "SalarySettings"]
