"""Unit tests for hour-tier rate resolution."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.services.exceptions import RateResolutionError
from app.backend.src.services.rates import (
    OPEN_ENDED_MAX_HOURS,
    RateTier,
    resolve_rate,
    resolve_tier,
    validate_partitions,
)
from app.backend.src.services.salary_settings import DEFAULT_RATE_PARTITIONS

TWO_TIERS = [
    RateTier("Starter", 0, 10, 5.0),
    RateTier("Experienced", 10.01, OPEN_ENDED_MAX_HOURS, 7.0),
]
DEFAULT_TIERS = [RateTier(*row) for row in DEFAULT_RATE_PARTITIONS]


def test_hours_above_first_tier_resolve_to_second_rate() -> None:
    assert resolve_rate(15, TWO_TIERS) == 7.0


@pytest.mark.parametrize(
    ("hours", "expected"),
    [(0, 5.0), (10, 5.0), (10.01, 7.0), (OPEN_ENDED_MAX_HOURS, 7.0)],
)
def test_tier_bounds_are_inclusive(hours: float, expected: float) -> None:
    assert resolve_rate(hours, TWO_TIERS) == expected


def test_sub_unit_gap_resolves_to_lower_tier() -> None:
    assert resolve_tier(10.005, TWO_TIERS).name == "Starter"


def test_unsorted_tiers_are_scanned_by_minimum() -> None:
    assert resolve_rate(3, list(reversed(TWO_TIERS))) == 5.0


def test_negative_hours_are_rejected() -> None:
    with pytest.raises(RateResolutionError):
        resolve_rate(-1, TWO_TIERS)


def test_hours_beyond_last_tier_raise() -> None:
    with pytest.raises(RateResolutionError, match="No rate partition covers"):
        resolve_rate(OPEN_ENDED_MAX_HOURS + 1, TWO_TIERS)


def test_hours_below_first_tier_raise() -> None:
    tiers = [RateTier("Late start", 5, OPEN_ENDED_MAX_HOURS, 4.0)]
    with pytest.raises(RateResolutionError, match="below the first"):
        resolve_rate(2, tiers)


def test_default_table_is_valid_and_covers_every_hundredth() -> None:
    assert validate_partitions(DEFAULT_TIERS) == []
    for step in range(0, 20000):
        hours = step / 100
        matches = [tier for tier in DEFAULT_TIERS if tier.contains(hours)]
        assert len(matches) == 1
        assert resolve_tier(hours, DEFAULT_TIERS) == matches[0]


@pytest.mark.parametrize(("hours", "rate"), [(60, 3.0), (60.01, 3.25), (150.01, 4.5)])
def test_default_table_rates(hours: float, rate: float) -> None:
    assert resolve_rate(hours, DEFAULT_TIERS) == rate


def test_validate_partitions_reports_gap_and_overlap() -> None:
    gap = [RateTier("A", 0, 10, 5), RateTier("B", 12, OPEN_ENDED_MAX_HOURS, 6)]
    overlap = [RateTier("A", 0, 10, 5), RateTier("B", 9, OPEN_ENDED_MAX_HOURS, 6)]

    assert any("Gap" in error for error in validate_partitions(gap))
    assert any("overlap" in error for error in validate_partitions(overlap))


def test_validate_partitions_reports_bounds_and_rates() -> None:
    errors = validate_partitions(
        [RateTier("A", 1, 10, 0), RateTier("B", 10.01, 500, 6)]
    )

    assert "The first partition must start at 0 hours." in errors
    assert any("extend to 99999" in error for error in errors)
    assert any("positive rate" in error for error in errors)


def test_validate_partitions_rejects_inverted_tier() -> None:
    errors = validate_partitions([RateTier("A", 0, -1, 5)])
    assert any("maximum below its minimum" in error for error in errors)


def test_validate_partitions_requires_a_tier() -> None:
    assert validate_partitions([]) == ["At least one rate partition is required."]
