"""Transfer fee computation and proration over refunded hours."""

from __future__ import annotations

from dataclasses import dataclass

from .currency import round_currency, round_hours

FEE_MODELS: tuple[str, ...] = ("flat", "percentage", "none")


@dataclass(frozen=True)
class TransferFeeConfig:
    model: str = "none"
    value: float = 0.0


def compute_fee(base_amount: float, config: TransferFeeConfig) -> float:
    """Return the fee charged on ``base_amount``.

    A flat fee ignores the base; a percentage fee is ``value`` percent of it.
    """

    if config.model == "flat":
        return round_currency(max(config.value or 0, 0))
    if config.model == "percentage":
        return round_currency((base_amount or 0) * (config.value or 0) / 100)
    if config.model == "none":
        return 0.0
    raise ValueError(f"Unknown transfer fee model: {config.model}")


def fee_coverage_hours(coverage_hours_cap: float, total_invoice_hours: float = 0) -> float:
    """Hours the fee is spread over: the coverage cap when set, else invoice hours."""

    return coverage_hours_cap if coverage_hours_cap and coverage_hours_cap > 0 else (total_invoice_hours or 0)


def prorate_fee(
    total_fee: float,
    refund_hours: float,
    coverage_hours_cap: float,
    total_invoice_hours: float = 0,
) -> float:
    coverage = fee_coverage_hours(coverage_hours_cap, total_invoice_hours)
    if coverage <= 0:
        return 0.0
    ratio = min((refund_hours or 0) / coverage, 1.0)
    return round_currency((total_fee or 0) * ratio)


def amount_from_hours(
    hours: float,
    hourly_rate: float,
    total_fee: float,
    coverage_hours_cap: float,
    total_invoice_hours: float = 0,
) -> float:
    """Refund amount for ``hours``: base pay plus the proportional fee."""

    base = round_currency((hours or 0) * (hourly_rate or 0))
    fee = prorate_fee(total_fee, hours, coverage_hours_cap, total_invoice_hours)
    return round_currency(base + fee)


def hours_from_amount(
    amount: float,
    hourly_rate: float,
    total_fee: float,
    coverage_hours_cap: float,
    total_invoice_hours: float = 0,
) -> float | None:
    """Inverse of :func:`amount_from_hours` using the fee-loaded effective rate."""

    coverage = fee_coverage_hours(coverage_hours_cap, total_invoice_hours)
    fee_per_hour = (total_fee or 0) / coverage if coverage > 0 else 0.0
    effective_rate = (hourly_rate or 0) + fee_per_hour
    if effective_rate <= 0:
        return None
    hours = (amount or 0) / effective_rate
    upper = coverage if coverage > 0 else hours
    return round_hours(min(max(hours, 0.0), upper))


__all__ = [
    "FEE_MODELS",
    "TransferFeeConfig",
    "amount_from_hours",
    "compute_fee",
    "fee_coverage_hours",
    "hours_from_amount",
    "prorate_fee",
]
