"""Tests for order total computation."""

from decimal import Decimal

from hypothesis import given, strategies as st

from lpo_engines.pricing import PricedLine, compute_totals


def test_vat_on_single_line():
    totals = compute_totals([PricedLine(Decimal("10"), Decimal("15"))], Decimal("5"), Decimal("0"), "OMR")
    assert totals.subtotal == Decimal("150.000")
    assert totals.vat_amount == Decimal("7.500")
    assert totals.total == Decimal("157.500")


def test_discount_applies_to_subtotal():
    totals = compute_totals(
        [PricedLine(Decimal("4"), Decimal("25"))], Decimal("5"), Decimal("10"), "OMR"
    )
    # 100 * 1.05 - 100 * 0.10
    assert totals.discount_amount == Decimal("10.000")
    assert totals.total == Decimal("95.000")


def test_rounds_to_currency_minor_unit():
    totals = compute_totals(
        [PricedLine(Decimal("3"), Decimal("0.3333"))], Decimal("0"), Decimal("0"), "USD"
    )
    assert totals.total == Decimal("1.00")


def test_total_built_from_rounded_parts():
    # vat 0.0125 -> 0.013, discount 0.0125 -> 0.013
    totals = compute_totals(
        [PricedLine(Decimal("1"), Decimal("0.25"))], Decimal("5"), Decimal("5"), "OMR"
    )
    assert totals.vat_amount == Decimal("0.013")
    assert totals.discount_amount == Decimal("0.013")
    assert totals.total == Decimal("0.250")
    assert totals.subtotal + totals.vat_amount - totals.discount_amount == totals.total


def test_stored_parts_add_up_when_rounding_diverges():
    # vat 0.0125 -> 0.013, discount 0.0124 -> 0.012; unrounded total 0.2501
    totals = compute_totals(
        [PricedLine(Decimal("1"), Decimal("0.25"))], Decimal("5"), Decimal("4.96"), "OMR"
    )
    assert totals.discount_amount == Decimal("0.012")
    assert totals.total == Decimal("0.251")
    assert totals.subtotal + totals.vat_amount - totals.discount_amount == totals.total


def test_no_lines():
    totals = compute_totals([], Decimal("5"), Decimal("0"), "OMR")
    assert totals.total == Decimal("0.000")


prices = st.decimals(min_value=0, max_value=100_000, places=3)
quantities = st.integers(min_value=1, max_value=500)
percents = st.decimals(min_value=0, max_value=100, places=2)


@given(
    lines=st.lists(st.tuples(quantities, prices), min_size=1, max_size=10),
    vat=percents,
    discount=percents,
)
def test_total_formula_holds(lines, vat, discount):
    priced = [PricedLine(Decimal(q), p) for q, p in lines]
    totals = compute_totals(priced, vat, discount, "OMR")
    subtotal = sum(Decimal(q) * p for q, p in lines)
    expected = subtotal * (1 + vat / 100) - subtotal * discount / 100
    assert abs(totals.total - expected) <= Decimal("0.0015")
    assert totals.subtotal + totals.vat_amount - totals.discount_amount == totals.total
