"""Invoice totals, admin overrides, change history and status rules."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .currency import round_currency, round_hours, to_target_currency
from .exceptions import InvoiceStateError, InvoiceValidationError
from .transfer_fees import TransferFeeConfig, compute_fee

OVERRIDABLE_FIELDS: tuple[str, ...] = (
    "gross_amount_usd",
    "bonuses_usd",
    "extras_usd",
    "total_usd",
    "gross_amount_egp",
    "bonuses_egp",
    "extras_egp",
    "total_egp",
    "transfer_fee_egp",
    "net_amount_egp",
    "exchange_rate",
)

_CAMEL_ALIASES = {
    "grossAmountUSD": "gross_amount_usd",
    "bonusesUSD": "bonuses_usd",
    "extrasUSD": "extras_usd",
    "totalUSD": "total_usd",
    "grossAmountEGP": "gross_amount_egp",
    "bonusesEGP": "bonuses_egp",
    "extrasEGP": "extras_egp",
    "totalEGP": "total_egp",
    "transferFeeEGP": "transfer_fee_egp",
    "netAmountEGP": "net_amount_egp",
    "exchangeRate": "exchange_rate",
}

MUTABLE_STATUSES: frozenset[str] = frozenset({"draft", "published"})

TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"published", "archived"}),
    "published": frozenset({"paid", "archived", "draft"}),
    "paid": frozenset(),
    "archived": frozenset(),
}


@dataclass(frozen=True)
class InvoiceTotals:
    total_hours: float
    rate_usd: float
    exchange_rate: float
    gross_amount_usd: float
    bonuses_usd: float
    extras_usd: float
    total_usd: float
    gross_amount_egp: float
    bonuses_egp: float
    extras_egp: float
    total_egp: float
    transfer_fee_egp: float
    refunded_amount_egp: float
    net_amount_egp: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def calculate_totals(
    *,
    total_hours: float,
    rate_usd: float,
    exchange_rate: float,
    fee_config: TransferFeeConfig,
    bonuses: Iterable[float] = (),
    extras: Iterable[float] = (),
    refunded_amount_usd: float = 0.0,
    refunded_fee_usd: float = 0.0,
    overrides: Mapping[str, float] | None = None,
) -> InvoiceTotals:
    """Compute every invoice figure from hours, rate and snapshots.

    ``refunded_fee_usd`` is the transfer-fee share already returned by refunds
    and comes off the computed fee. Pinned ``overrides`` replace the computed
    figure of the same name and feed every figure derived from it.
    """

    pinned = dict(overrides or {})

    def pick(name: str, computed: float) -> float:
        value = pinned.get(name)
        return round_currency(value) if value is not None else computed

    rate = pinned.get("exchange_rate") or exchange_rate or 0.0
    hours = round_hours(total_hours)

    gross_usd = pick("gross_amount_usd", round_currency(hours * (rate_usd or 0)))
    bonuses_usd = pick("bonuses_usd", round_currency(sum(bonuses)))
    extras_usd = pick("extras_usd", round_currency(sum(extras)))
    total_usd = pick("total_usd", round_currency(gross_usd + bonuses_usd + extras_usd))

    gross_egp = pick("gross_amount_egp", to_target_currency(gross_usd, rate))
    bonuses_egp = pick("bonuses_egp", to_target_currency(bonuses_usd, rate))
    extras_egp = pick("extras_egp", to_target_currency(extras_usd, rate))
    if any(name in pinned for name in ("gross_amount_egp", "bonuses_egp", "extras_egp")):
        computed_total_egp = round_currency(gross_egp + bonuses_egp + extras_egp)
    else:
        computed_total_egp = to_target_currency(total_usd, rate)
    total_egp = pick("total_egp", computed_total_egp)

    refunded_fee_egp = to_target_currency(refunded_fee_usd, rate)
    fee_egp = pick(
        "transfer_fee_egp",
        round_currency(max(0.0, compute_fee(total_egp, fee_config) - refunded_fee_egp)),
    )
    refunded_egp = to_target_currency(refunded_amount_usd, rate)
    net_egp = pick(
        "net_amount_egp", round_currency(max(0.0, total_egp - fee_egp - refunded_egp))
    )

    return InvoiceTotals(
        total_hours=hours,
        rate_usd=rate_usd or 0.0,
        exchange_rate=rate,
        gross_amount_usd=gross_usd,
        bonuses_usd=bonuses_usd,
        extras_usd=extras_usd,
        total_usd=total_usd,
        gross_amount_egp=gross_egp,
        bonuses_egp=bonuses_egp,
        extras_egp=extras_egp,
        total_egp=total_egp,
        transfer_fee_egp=fee_egp,
        refunded_amount_egp=refunded_egp,
        net_amount_egp=net_egp,
    )


_TOTAL_FIELDS: tuple[str, ...] = (
    "total_hours",
    "gross_amount_usd",
    "bonuses_usd",
    "extras_usd",
    "total_usd",
    "gross_amount_egp",
    "bonuses_egp",
    "extras_egp",
    "total_egp",
    "transfer_fee_egp",
    "refunded_amount_egp",
    "net_amount_egp",
)


def recalculate_invoice(invoice: Any) -> InvoiceTotals:
    """Recompute an invoice's totals from its own snapshots and write them back."""

    totals = calculate_totals(
        total_hours=invoice.total_hours or 0,
        rate_usd=invoice.rate_usd or 0,
        exchange_rate=invoice.exchange_rate or 0,
        fee_config=TransferFeeConfig(invoice.transfer_fee_model, invoice.transfer_fee_value or 0),
        bonuses=[bonus.amount_usd for bonus in invoice.bonuses],
        extras=[extra.amount_usd for extra in invoice.extras],
        refunded_amount_usd=invoice.refunded_amount_usd or 0,
        refunded_fee_usd=sum(refund.prorated_fee_usd or 0 for refund in invoice.refunds),
        overrides=invoice.overrides,
    )
    for name in _TOTAL_FIELDS:
        setattr(invoice, name, getattr(totals, name))
    return totals


def normalize_overrides(payload: Mapping[str, Any]) -> dict[str, float | None]:
    """Map camelCase or snake_case override keys to field names.

    ``None`` or an empty string clears the pin and is returned as ``None``.
    """

    normalized: dict[str, float | None] = {}
    for raw_key, raw_value in payload.items():
        key = _CAMEL_ALIASES.get(raw_key, raw_key)
        if key not in OVERRIDABLE_FIELDS:
            raise InvoiceValidationError(f"Unknown override field: {raw_key}")
        if raw_value is None or (isinstance(raw_value, str) and not raw_value.strip()):
            normalized[key] = None
            continue
        if isinstance(raw_value, bool):
            raise InvoiceValidationError(f"Override {raw_key} must be a number.")
        try:
            value = float(raw_value)
        except (TypeError, ValueError) as exc:
            raise InvoiceValidationError(f"Override {raw_key} must be a number.") from exc
        if not math.isfinite(value):
            raise InvoiceValidationError(f"Override {raw_key} must be a finite number.")
        if key == "exchange_rate" and value <= 0:
            raise InvoiceValidationError("Exchange rate override must be positive.")
        normalized[key] = value
    return normalized


def merge_overrides(
    current: Mapping[str, float] | None, changes: Mapping[str, float | None]
) -> dict[str, float]:
    merged = dict(current or {})
    for key, value in changes.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def build_change_entry(
    action: str,
    *,
    changed_by: str | None,
    old_value: Any = None,
    new_value: Any = None,
    note: str | None = None,
) -> dict[str, Any]:
    return {
        "action": action,
        "old_value": old_value,
        "new_value": new_value,
        "changed_by": changed_by,
        "changed_at": datetime.now(timezone.utc),
        "note": note,
    }


def ensure_mutable(status: str) -> None:
    """Raise unless bonuses, extras and overrides may change in ``status``."""

    if status not in MUTABLE_STATUSES:
        raise InvoiceStateError(f"Cannot modify an invoice in status '{status}'.")


def can_transition(old_status: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(old_status, frozenset())


__all__ = [
    "InvoiceTotals",
    "MUTABLE_STATUSES",
    "OVERRIDABLE_FIELDS",
    "TRANSITIONS",
    "build_change_entry",
    "calculate_totals",
    "can_transition",
    "ensure_mutable",
    "merge_overrides",
    "normalize_overrides",
    "recalculate_invoice",
]
