"""Rounding and USD/payout-currency conversion helpers."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_CENTS = Decimal("0.01")
_MILLI_HOURS = Decimal("0.001")


def _quantize(value: float | int | Decimal | None, step: Decimal) -> float:
    if value is None:
        return 0.0
    # str() keeps 2.675 as written instead of its binary expansion.
    return float(Decimal(str(value)).quantize(step, rounding=ROUND_HALF_UP))


def round_currency(value: float | int | Decimal | None) -> float:
    """Round half-up to two decimal places."""

    return _quantize(value, _CENTS)


def round_hours(value: float | int | Decimal | None) -> float:
    """Round half-up to three decimal places."""

    return _quantize(value, _MILLI_HOURS)


def to_target_currency(amount_usd: float, rate_snapshot: float) -> float:
    """Convert a USD amount with the invoice's exchange-rate snapshot."""

    return round_currency((amount_usd or 0) * (rate_snapshot or 0))


def to_usd(amount_target: float, rate_snapshot: float | None) -> float | None:
    """Convert a payout-currency amount back to USD, ``None`` without a rate."""

    if not rate_snapshot:
        return None
    return round_currency((amount_target or 0) / rate_snapshot)


def hours_from_amount(amount: float, hourly_rate: float | None) -> float | None:
    """Hours represented by ``amount`` at ``hourly_rate``, ``None`` without a rate."""

    if not hourly_rate:
        return None
    return round_hours((amount or 0) / hourly_rate)


__all__ = [
    "hours_from_amount",
    "round_currency",
    "round_hours",
    "to_target_currency",
    "to_usd",
]
