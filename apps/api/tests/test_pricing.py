from __future__ import annotations

import math

import pytest

from opsdesk.procurement.pricing import (
    LineItemError,
    format_amount,
    price_line_item,
    price_line_items,
    round_money,
    to_finite_number,
)


def test_line_item_with_tax_is_priced_to_cents() -> None:
    item = price_line_item({"description": "Cable tray", "qty": 2, "unitPrice": 100, "taxRate": 5})

    assert item.tax_amount == 10.0
    assert item.line_total == 210.0
    assert item.to_document() == {
        "description": "Cable tray",
        "qty": 2.0,
        "unitPrice": 100.0,
        "taxRate": 5.0,
        "taxAmount": 10.0,
        "lineTotal": 210.0,
        "notes": "",
    }


def test_request_totals_sum_line_items() -> None:
    raw = {"description": "Cable tray", "qty": 2, "unitPrice": 100, "taxRate": 5}

    items, totals = price_line_items([raw, dict(raw)])

    assert len(items) == 2
    assert (totals.subtotal, totals.tax_amount, totals.total) == (400.0, 20.0, 420.0)


def test_missing_tax_rate_defaults_to_zero() -> None:
    item = price_line_item({"description": "Survey", "qty": 1, "unitPrice": 99.999, "notes": "  site visit "})

    assert item.tax_rate == 0.0
    assert item.tax_amount == 0.0
    assert item.unit_price == 100.0
    assert item.notes == "site visit"


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"description": "  ", "qty": 1, "unitPrice": 1}, "Each line item requires a description."),
        ({"description": "A", "qty": 0, "unitPrice": 1}, "Each line item requires qty greater than 0."),
        ({"description": "A", "qty": "2", "unitPrice": 1}, "Each line item requires qty greater than 0."),
        ({"description": "A", "qty": 1, "unitPrice": -1}, "Each line item requires unit price of 0 or more."),
        ({"description": "A", "qty": 1}, "Each line item requires unit price of 0 or more."),
        ({"description": "A", "qty": 1, "unitPrice": 1, "taxRate": -5}, "Tax rate cannot be negative."),
        ({"qty": -1, "unitPrice": -1, "taxRate": -1}, "Each line item requires a description."),
        ("not-an-object", "Each line item requires a description."),
    ],
)
def test_first_failing_rule_is_reported(raw: object, message: str) -> None:
    with pytest.raises(LineItemError) as exc_info:
        price_line_item(raw)

    assert str(exc_info.value) == message


@pytest.mark.parametrize(
    "raw, message",
    [
        ({"description": "A", "qty": 1, "unitPrice": 1e27}, "Line item total is too large."),
        ({"description": "A", "qty": 1e200, "unitPrice": 1e200}, "Line item total is too large."),
        ({"description": "A", "qty": 1e300, "unitPrice": 1e300, "taxRate": 0}, "Line item total is too large."),
        ({"description": "A", "qty": 1e15, "unitPrice": 10, "taxRate": 5}, "Line item total is too large."),
    ],
)
def test_amounts_beyond_storage_are_rejected(raw: dict, message: str) -> None:
    with pytest.raises(LineItemError) as exc_info:
        price_line_item(raw)

    assert str(exc_info.value) == message


def test_request_total_beyond_storage_is_rejected() -> None:
    raw = {"description": "Turbine", "qty": 1, "unitPrice": 6e15}

    with pytest.raises(LineItemError) as exc_info:
        price_line_items([raw, dict(raw)])

    assert str(exc_info.value) == "Request total is too large."


def test_free_line_with_huge_tax_rate_is_priced() -> None:
    item = price_line_item({"description": "Sample", "qty": 1, "unitPrice": 0, "taxRate": 1e30})

    assert item.line_total == 0.0
    assert item.tax_rate == 1e30


def test_round_money_rounds_halves_away_from_zero() -> None:
    assert round_money(2.675) == 2.68
    assert round_money(0.125) == 0.13
    assert round_money(-0.125) == -0.13
    assert round_money(1.005) == 1.01
    assert round_money(1e27) == 1e27
    with pytest.raises(ValueError):
        round_money(math.inf)


def test_to_finite_number_rejects_non_numbers() -> None:
    assert to_finite_number(3) == 3.0
    assert to_finite_number(True) is None
    assert to_finite_number("3") is None
    assert to_finite_number(math.inf) is None
    assert to_finite_number(math.nan) is None


def test_format_amount_drops_trailing_zero_cents() -> None:
    assert format_amount(420.0) == "420"
    assert format_amount(1250.5) == "1,250.5"
    assert format_amount(1250.55) == "1,250.55"
