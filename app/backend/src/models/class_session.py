"""Class session model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .teacher import Teacher
    from .teacher_invoice import TeacherInvoice

COUNTABLE_STATUSES: tuple[str, ...] = ("attended", "missed_by_student", "completed", "absent")


class ClassSession(TimestampMixin, Base):
    """A lesson recorded by the scheduling system.

    ``billed_invoice_id`` links the session to the salary invoice it is billed
    in; a session is billable while the link is empty.
    """

    __tablename__ = "class_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="scheduled")
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billed_invoice_id: Mapped[int | None] = mapped_column(
        ForeignKey("teacher_invoices.id"), nullable=True, index=True
    )
    billed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    teacher: Mapped["Teacher"] = relationship("Teacher", back_populates="class_sessions")
    invoice: Mapped["TeacherInvoice | None"] = relationship(
        "TeacherInvoice", back_populates="class_sessions"
    )

    @property
    def hours(self) -> float:
        return (self.duration_minutes or 0) / 60


__all__ = ["COUNTABLE_STATUSES", "ClassSession"]
