"""Hour-tier rate table resolution and validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .exceptions import RateResolutionError

OPEN_ENDED_MAX_HOURS = 99999.0
HOUR_UNIT = 0.01
_EPSILON = 1e-6


@dataclass(frozen=True)
class RateTier:
    """A contiguous band of monthly hours paid at one USD rate."""

    name: str
    min_hours: float
    max_hours: float
    rate_usd: float

    def contains(self, hours: float) -> bool:
        return self.min_hours <= hours <= self.max_hours


def _sorted(tiers: Iterable[RateTier]) -> list[RateTier]:
    return sorted(tiers, key=lambda tier: tier.min_hours)


def resolve_tier(hours_worked: float, tiers: Sequence[RateTier]) -> RateTier:
    """Return the tier that pays ``hours_worked``.

    Hours inside the sub-unit gap between two contiguous tiers belong to the
    lower tier. Hours outside the table raise :class:`RateResolutionError`.
    """

    if hours_worked is None or hours_worked < 0:
        raise RateResolutionError(f"Hours worked must be non-negative, got {hours_worked}.")

    ordered = _sorted(tiers)
    if not ordered:
        raise RateResolutionError("No rate partitions are configured.")

    previous: RateTier | None = None
    for tier in ordered:
        if tier.contains(hours_worked):
            return tier
        if (
            previous is not None
            and previous.max_hours < hours_worked < tier.min_hours
            and tier.min_hours - previous.max_hours <= HOUR_UNIT + _EPSILON
        ):
            return previous
        previous = tier

    if hours_worked < ordered[0].min_hours:
        raise RateResolutionError(
            f"{hours_worked:g}h is below the first rate partition ({ordered[0].min_hours:g}h)."
        )
    raise RateResolutionError(f"No rate partition covers {hours_worked:g}h.")


def resolve_rate(hours_worked: float, tiers: Sequence[RateTier]) -> float:
    """Return the USD hourly rate for ``hours_worked``."""

    return resolve_tier(hours_worked, tiers).rate_usd


def validate_partitions(tiers: Sequence[RateTier]) -> list[str]:
    """Return human readable problems with a rate table; empty when valid."""

    errors: list[str] = []
    ordered = _sorted(tiers)
    if not ordered:
        return ["At least one rate partition is required."]

    for tier in ordered:
        label = tier.name or f"{tier.min_hours:g}-{tier.max_hours:g}"
        if tier.min_hours < 0:
            errors.append(f"Partition '{label}' has a negative minimum.")
        if tier.max_hours < tier.min_hours:
            errors.append(f"Partition '{label}' has a maximum below its minimum.")
        if tier.rate_usd <= 0:
            errors.append(f"Partition '{label}' must have a positive rate.")

    if abs(ordered[0].min_hours) > _EPSILON:
        errors.append("The first partition must start at 0 hours.")
    if ordered[-1].max_hours < OPEN_ENDED_MAX_HOURS - _EPSILON:
        errors.append(f"The last partition must extend to {OPEN_ENDED_MAX_HOURS:g} hours.")

    for previous, tier in zip(ordered, ordered[1:]):
        expected = previous.max_hours + HOUR_UNIT
        if tier.min_hours <= previous.max_hours + _EPSILON:
            errors.append(f"Partitions '{previous.name}' and '{tier.name}' overlap.")
        elif abs(tier.min_hours - expected) > _EPSILON:
            errors.append(
                f"Gap between '{previous.name}' and '{tier.name}': "
                f"expected {tier.name} to start at {expected:.2f}."
            )

    return errors


__all__ = [
    "HOUR_UNIT",
    "OPEN_ENDED_MAX_HOURS",
    "RateTier",
    "resolve_rate",
    "resolve_tier",
    "validate_partitions",
]
