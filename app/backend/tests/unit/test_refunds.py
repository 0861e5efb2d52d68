"""Unit tests for refund reconciliation."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.services.exceptions import RefundValidationError
from app.backend.src.services.refunds import quote_refund, validate_refund
from app.backend.src.services.transfer_fees import amount_from_hours


@pytest.mark.parametrize("hours", [0.25, 1, 3.5, 8])
def test_amount_derived_from_hours_always_validates(hours: float) -> None:
    amount = amount_from_hours(hours, 10, 2, 8)

    quote = validate_refund(hours, amount, rate_usd=10, transfer_fee=2, coverage_hours_cap=8)

    assert quote.refund_amount == amount
    assert quote.refund_hours == hours


@pytest.mark.parametrize("hours", [0.25, 1, 3.5, 8])
def test_inflated_amount_is_rejected_with_expected_figure(hours: float) -> None:
    amount = amount_from_hours(hours, 10, 2, 8)

    with pytest.raises(RefundValidationError, match="Mismatch between refund amount and hours"):
        validate_refund(hours, amount + 10, rate_usd=10, transfer_fee=2, coverage_hours_cap=8)


def test_mismatch_message_mentions_expected_amount_and_fee() -> None:
    with pytest.raises(RefundValidationError) as excinfo:
        validate_refund(4, 51, rate_usd=10, transfer_fee=2, coverage_hours_cap=8)

    assert str(excinfo.value) == (
        "Mismatch between refund amount and hours at $10/hr. "
        "Expected $41.00 (including $1.00 proportional transfer fee), received $51.00."
    )


def test_mismatch_without_fee_omits_fee_note() -> None:
    with pytest.raises(RefundValidationError) as excinfo:
        validate_refund(2, 25, rate_usd=10, transfer_fee=0, coverage_hours_cap=8)

    assert "proportional transfer fee" not in str(excinfo.value)
    assert "Expected $20.00" in str(excinfo.value)


def test_hours_beyond_coverage_are_rejected() -> None:
    with pytest.raises(RefundValidationError, match="cannot exceed 5h"):
        validate_refund(6, 60, rate_usd=10, transfer_fee=0, coverage_hours_cap=5)


def test_hours_within_tolerance_of_coverage_pass() -> None:
    quote = validate_refund(5.0004, 50, rate_usd=10, transfer_fee=0, coverage_hours_cap=5)
    assert quote.refund_hours == 5.0


def test_coverage_falls_back_to_invoice_hours() -> None:
    with pytest.raises(RefundValidationError, match="cannot exceed 10h"):
        validate_refund(12, 120, 10, 0, coverage_hours_cap=0, total_invoice_hours=10)


def test_refund_without_any_covered_hours_is_rejected() -> None:
    with pytest.raises(RefundValidationError, match="No covered hours remain"):
        validate_refund(1, 10, 10, 0, coverage_hours_cap=0, total_invoice_hours=0)


@pytest.mark.parametrize(("hours", "amount"), [(0, 10), (-1, 10), (1, 0), (1, -3)])
def test_non_positive_values_are_rejected(hours: float, amount: float) -> None:
    with pytest.raises(RefundValidationError, match="greater than zero"):
        validate_refund(hours, amount, 10, 0, 8)


def test_amount_tolerance_is_one_and_a_half_cents() -> None:
    assert validate_refund(4, 41.01, 10, 2, 8).refund_amount == 41.01
    with pytest.raises(RefundValidationError):
        validate_refund(4, 41.02, 10, 2, 8)
    assert validate_refund(4, 41.04, 10, 2, 8, tolerance_cents=5).refund_amount == 41.04


def test_quote_refund_breaks_down_amount() -> None:
    quote = quote_refund(10, rate_usd=3, transfer_fee=25, coverage_hours_cap=20)

    assert quote.base_amount == 30.0
    assert quote.prorated_fee == 12.5
    assert quote.expected_amount == 42.5
    assert quote.coverage_hours == 20
