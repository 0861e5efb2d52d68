"""Notification service stubs."""

from __future__ import annotations

import structlog

LOGGER = structlog.get_logger(__name__)


def notify_invoice_published(teacher_email: str, invoice_number: str | None, net_amount: float) -> None:
    """Log that a teacher would have been told about a published invoice."""

    LOGGER.info(
        "notification_invoice_published",
        recipient=teacher_email,
        invoice_number=invoice_number,
        net_amount=net_amount,
    )


def notify_invoice_paid(teacher_email: str, invoice_number: str | None, paid_amount: float) -> None:
    LOGGER.info(
        "notification_invoice_paid",
        recipient=teacher_email,
        invoice_number=invoice_number,
        paid_amount=paid_amount,
    )


def notify_generation_summary(summary: dict[str, int], *, month: int, year: int) -> None:
    LOGGER.info("notification_generation_summary", month=month, year=year, **summary)
