from datetime import datetime, timezone

import pytest

from catalog.normalization import (
    coerce_product_id,
    join_tags,
    make_handle,
    min_variant_price,
    parse_bestseller_score,
    parse_feed_datetime,
    parse_price,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "value, expected",
    [
        ("19.99", 19.99),
        (12, 12.0),
        ("$1,299.00", 1299.0),
        ("", None),
        (None, None),
        (True, None),
        ("free", None),
    ],
)
def test_parse_price(value, expected):
    assert parse_price(value) == expected


def test_min_variant_price_picks_cheapest_variant():
    record = {
        "price": "99.00",
        "variants": [
            {"price": "30.00", "compare_at_price": "40.00"},
            {"price": "25.50", "compare_at_price": "35.00"},
            {"price": "n/a"},
        ],
    }
    assert min_variant_price(record) == (25.5, 35.0)


def test_min_variant_price_without_variants_uses_record_price():
    assert min_variant_price({"price": "12.00"}) == (12.0, None)
    assert min_variant_price({}) == (0.0, None)


def test_min_variant_price_unparseable_variants_default_to_zero():
    assert min_variant_price({"price": "50", "variants": [{"price": None}]})[0] == 0.0


def test_parse_feed_datetime():
    assert parse_feed_datetime("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_feed_datetime(0) is None
    assert parse_feed_datetime(1704164645000) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_feed_datetime("yesterday") is None


def test_make_handle_and_tags():
    assert make_handle("Red Metal Hammer (XL)") == "red-metal-hammer-xl"
    assert make_handle(None) == ""
    assert join_tags(["red", " metal ", ""]) == "red,metal"
    assert join_tags("red, metal,,") == "red,metal"
    assert join_tags(None) == ""


@pytest.mark.parametrize(
    "value, expected",
    [(7, 7), (7.0, 7), ("42", 42), (" 42 ", 42), (7.5, None), ("abc", None), (None, None), (True, None)],
)
def test_coerce_product_id(value, expected):
    assert coerce_product_id(value) == expected


def test_bestseller_score_is_clamped():
    assert parse_bestseller_score("150") == 100.0
    assert parse_bestseller_score(-3) == 0.0
    assert parse_bestseller_score(None) is None
