"""Refund reconciliation against an invoice's rate and fee snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from .currency import round_currency, round_hours
from .exceptions import RefundValidationError
from .transfer_fees import amount_from_hours, fee_coverage_hours, prorate_fee

HOURS_TOLERANCE = 0.0005
DEFAULT_TOLERANCE_CENTS = 1.5


@dataclass(frozen=True)
class RefundQuote:
    refund_hours: float
    refund_amount: float
    base_amount: float
    prorated_fee: float
    expected_amount: float
    coverage_hours: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def quote_refund(
    hours: float,
    rate_usd: float,
    transfer_fee: float,
    coverage_hours_cap: float,
    total_invoice_hours: float = 0,
) -> RefundQuote:
    """Expected refund figures for ``hours`` without validating a request."""

    refund_hours = round_hours(hours)
    base_amount = round_currency(refund_hours * (rate_usd or 0))
    fee = prorate_fee(transfer_fee, refund_hours, coverage_hours_cap, total_invoice_hours)
    expected = amount_from_hours(
        refund_hours, rate_usd, transfer_fee, coverage_hours_cap, total_invoice_hours
    )
    return RefundQuote(
        refund_hours=refund_hours,
        refund_amount=expected,
        base_amount=base_amount,
        prorated_fee=fee,
        expected_amount=expected,
        coverage_hours=round_hours(fee_coverage_hours(coverage_hours_cap, total_invoice_hours)),
    )


def validate_refund(
    requested_hours: float,
    requested_amount: float,
    rate_usd: float,
    transfer_fee: float,
    coverage_hours_cap: float,
    total_invoice_hours: float = 0,
    tolerance_cents: float = DEFAULT_TOLERANCE_CENTS,
) -> RefundQuote:
    """Check that a refund's hours and amount agree with the invoice snapshot.

    Raises :class:`RefundValidationError` with a message suitable for display.
    """

    hours = round_hours(requested_hours)
    amount = round_currency(requested_amount)
    if amount <= 0:
        raise RefundValidationError("Refund amount must be greater than zero.")
    if hours <= 0:
        raise RefundValidationError("Refund hours must be greater than zero.")

    coverage = fee_coverage_hours(coverage_hours_cap, total_invoice_hours)
    if coverage <= 0:
        raise RefundValidationError("No covered hours remain to refund on this invoice.")
    if hours - HOURS_TOLERANCE > coverage:
        raise RefundValidationError(f"Refund hours cannot exceed {coverage:g}h.")

    quote = quote_refund(hours, rate_usd, transfer_fee, coverage_hours_cap, total_invoice_hours)
    if abs(quote.expected_amount - amount) > tolerance_cents / 100:
        fee_note = (
            f" (including ${quote.prorated_fee:.2f} proportional transfer fee)"
            if transfer_fee and transfer_fee > 0
            else ""
        )
        raise RefundValidationError(
            f"Mismatch between refund amount and hours at ${rate_usd:g}/hr. "
            f"Expected ${quote.expected_amount:.2f}{fee_note}, received ${amount:.2f}."
        )

    return RefundQuote(
        refund_hours=hours,
        refund_amount=amount,
        base_amount=quote.base_amount,
        prorated_fee=quote.prorated_fee,
        expected_amount=quote.expected_amount,
        coverage_hours=quote.coverage_hours,
    )


__all__ = ["DEFAULT_TOLERANCE_CENTS", "RefundQuote", "quote_refund", "validate_refund"]
