from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any

CENT = Decimal("0.01")
# Stored amounts are NUMERIC(18, 2).
MAX_AMOUNT = 1e16


class LineItemError(ValueError):
    """First failing rule of a submitted line item; the message is shown to the user."""


def round_money(value: float | int | Decimal) -> float:
    """Round to cents, halves away from zero."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite():
        raise ValueError(f"Cannot round non-finite amount {value!r}.")
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def within_amount_limit(value: float) -> bool:
    return math.isfinite(value) and abs(value) < MAX_AMOUNT


def to_finite_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def format_amount(value: float) -> str:
    text = f"{value:,.2f}"
    return text.rstrip("0").rstrip(".")


@dataclass(frozen=True, slots=True)
class PricedLineItem:
    description: str
    qty: float
    unit_price: float
    tax_rate: float
    tax_amount: float
    line_total: float
    notes: str

    def to_document(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "qty": self.qty,
            "unitPrice": self.unit_price,
            "taxRate": self.tax_rate,
            "taxAmount": self.tax_amount,
            "lineTotal": self.line_total,
            "notes": self.notes,
        }


@dataclass(frozen=True, slots=True)
class PricedTotals:
    subtotal: float
    tax_amount: float
    total: float


def price_line_item(raw: Any) -> PricedLineItem:
    item = raw if isinstance(raw, dict) else {}
    description = str(item.get("description") or "").strip()
    qty = to_finite_number(item.get("qty"))
    unit_price = to_finite_number(item.get("unitPrice"))
    tax_rate = to_finite_number(item.get("taxRate"))
    if tax_rate is None:
        tax_rate = 0.0

    if not description:
        raise LineItemError("Each line item requires a description.")
    if qty is None or qty <= 0:
        raise LineItemError("Each line item requires qty greater than 0.")
    if unit_price is None or unit_price < 0:
        raise LineItemError("Each line item requires unit price of 0 or more.")
    if tax_rate < 0:
        raise LineItemError("Tax rate cannot be negative.")

    base = qty * unit_price
    tax_amount = base * (tax_rate / 100)
    if not within_amount_limit(base + tax_amount):
        raise LineItemError("Line item total is too large.")
    return PricedLineItem(
        description=description,
        qty=qty,
        unit_price=round_money(unit_price),
        tax_rate=round_money(tax_rate),
        tax_amount=round_money(tax_amount),
        line_total=round_money(base + tax_amount),
        notes=str(item.get("notes") or "").strip(),
    )


def price_line_items(raw_items: Sequence[Any]) -> tuple[list[PricedLineItem], PricedTotals]:
    items = [price_line_item(raw) for raw in raw_items]
    subtotal = round_money(sum(item.qty * item.unit_price for item in items))
    tax_amount = round_money(sum(item.tax_amount for item in items))
    total = round_money(subtotal + tax_amount)
    if not within_amount_limit(total):
        raise LineItemError("Request total is too large.")
    return items, PricedTotals(subtotal=subtotal, tax_amount=tax_amount, total=total)
