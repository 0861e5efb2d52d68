"""Teacher model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .class_session import ClassSession
    from .teacher_invoice import TeacherInvoice


class Teacher(TimestampMixin, Base):
    """A tutor paid through monthly salary invoices."""

    __tablename__ = "teachers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )

    custom_rate_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    custom_rate_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    custom_transfer_fee_model: Mapped[str | None] = mapped_column(String(20), nullable=True)
    custom_transfer_fee_value: Mapped[float | None] = mapped_column(Float, nullable=True)

    class_sessions: Mapped[list["ClassSession"]] = relationship(
        "ClassSession", back_populates="teacher"
    )
    invoices: Mapped[list["TeacherInvoice"]] = relationship(
        "TeacherInvoice", back_populates="teacher"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


__all__ = ["Teacher"]
