from decimal import Decimal
from unittest import mock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from catalog.models import Product
from catalog.services.bulk_loader import BulkLoader
from catalog.services.price_normalizer import PriceNormalizer

pytestmark = pytest.mark.integration


def _load(session, prices: dict[int, str]):
    records = [
        {"id": pid, "title": f"Item {pid}", "product_type": "Tools", "price": price}
        for pid, price in prices.items()
    ]
    BulkLoader(session).load(records)


def _fts_ids(session) -> list[int]:
    return [row[0] for row in session.execute(text("SELECT rowid FROM products_fts ORDER BY rowid"))]


def _price(session, product_id):
    product = session.get(Product, product_id)
    if product is None:
        return None
    session.refresh(product)
    return product.price


@pytest.mark.parametrize(
    "price, expected",
    [
        (Decimal("750"), ("update", Decimal("300.00"), False)),
        (Decimal("749"), ("delete", None, False)),
        (Decimal("26000"), ("update", Decimal("10000"), True)),
        (Decimal("1234.56"), ("update", Decimal("493.82"), False)),
    ],
)
def test_decide_boundaries(test_session, price, expected):
    decision = PriceNormalizer(test_session).decide(price)

    action, new_price, clamped = expected
    assert decision.action == action
    if new_price is not None:
        assert decision.price == new_price
    assert decision.clamped is clamped


def test_run_scales_clamps_and_deletes(test_session):
    _load(test_session, {1: "750", 2: "749", 3: "26000", 4: "1000"})

    report = PriceNormalizer(test_session).run()

    assert report.processed == 4
    assert report.updated == 3
    assert report.clamped == 1
    assert report.deleted == 1
    assert report.failed == 0

    assert _price(test_session, 1) == 300.0
    assert _price(test_session, 2) is None
    assert _price(test_session, 3) == 10000.0
    assert _price(test_session, 4) == 400.0
    # 삭제된 상품은 검색 인덱스에서도 제거
    assert _fts_ids(test_session) == [1, 3, 4]


def test_one_failing_row_does_not_stop_the_pass(test_session):
    _load(test_session, {1: "1000", 2: "2000", 3: "3000"})
    normalizer = PriceNormalizer(test_session, retry_attempts=1)
    real_apply = normalizer._apply_row

    def apply_row(product_id, decision):
        if product_id == 2:
            raise SQLAlchemyError("row locked")
        return real_apply(product_id, decision)

    with mock.patch.object(normalizer, "_apply_row", side_effect=apply_row):
        report = normalizer.run()

    assert report.failed == 1
    assert report.updated == 2
    assert _price(test_session, 1) == 400.0
    assert _price(test_session, 2) == 2000.0
    assert _price(test_session, 3) == 1200.0


def test_transient_operational_error_is_retried(test_session):
    _load(test_session, {1: "1000"})
    normalizer = PriceNormalizer(test_session, retry_attempts=3)
    real_apply = normalizer._apply_row
    calls = {"n": 0}

    def apply_row(product_id, decision):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))
        return real_apply(product_id, decision)

    with mock.patch.object(normalizer, "_apply_row", side_effect=apply_row):
        with mock.patch("time.sleep"):
            report = normalizer.run()

    assert calls["n"] == 2
    assert report.updated == 1
    assert _price(test_session, 1) == 400.0
