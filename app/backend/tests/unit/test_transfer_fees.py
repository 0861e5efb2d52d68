"""Unit tests for transfer fee computation and proration."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.services.transfer_fees import (
    TransferFeeConfig,
    amount_from_hours,
    compute_fee,
    fee_coverage_hours,
    hours_from_amount,
    prorate_fee,
)

FLAT = TransferFeeConfig("flat", 25)
PERCENT = TransferFeeConfig("percentage", 5)


@pytest.mark.parametrize("base", [0, 10, 999.99, 100000])
def test_flat_fee_ignores_base(base: float) -> None:
    assert compute_fee(base, FLAT) == 25.0


@pytest.mark.parametrize(("base", "expected"), [(1000, 50.0), (333.33, 16.67), (0, 0.0)])
def test_percentage_fee_is_share_of_base(base: float, expected: float) -> None:
    assert compute_fee(base, PERCENT) == expected


def test_none_model_charges_nothing_and_negative_flat_is_zero() -> None:
    assert compute_fee(500, TransferFeeConfig("none", 40)) == 0.0
    assert compute_fee(500, TransferFeeConfig("flat", -5)) == 0.0


def test_unknown_model_raises() -> None:
    with pytest.raises(ValueError):
        compute_fee(100, TransferFeeConfig("tiered", 1))


def test_flat_fee_prorated_over_coverage_cap() -> None:
    assert prorate_fee(25, refund_hours=10, coverage_hours_cap=20) == 12.5


def test_percentage_fee_prorated_by_hours_share() -> None:
    total_fee = compute_fee(1000, PERCENT)
    assert prorate_fee(total_fee, refund_hours=4, coverage_hours_cap=8) == 25.0


def test_proration_caps_ratio_and_falls_back_to_invoice_hours() -> None:
    assert prorate_fee(25, refund_hours=30, coverage_hours_cap=20) == 25.0
    assert prorate_fee(25, refund_hours=5, coverage_hours_cap=0, total_invoice_hours=10) == 12.5
    assert prorate_fee(25, refund_hours=5, coverage_hours_cap=0, total_invoice_hours=0) == 0.0


def test_fee_coverage_hours_prefers_cap() -> None:
    assert fee_coverage_hours(5, 40) == 5
    assert fee_coverage_hours(0, 40) == 40


def test_amount_from_hours_adds_prorated_fee() -> None:
    # 4h at $10 plus 4/8 of a $2 fee
    assert amount_from_hours(4, 10, 2, 8) == 41.0


@pytest.mark.parametrize("hours", [0, 0.5, 1.25, 3.333, 7.9, 8])
def test_hours_round_trip_through_amount(hours: float) -> None:
    amount = amount_from_hours(hours, 12.5, 3.75, 8)
    recovered = hours_from_amount(amount, 12.5, 3.75, 8)
    assert recovered == pytest.approx(hours, abs=0.002)


def test_hours_from_amount_clamps_and_handles_zero_rate() -> None:
    assert hours_from_amount(10_000, 10, 2, 8) == 8
    assert hours_from_amount(-5, 10, 2, 8) == 0
    assert hours_from_amount(10, 0, 0, 8) is None
