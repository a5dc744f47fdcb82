from datetime import datetime, timezone
from unittest import mock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from catalog.services.bulk_loader import BulkLoader
from catalog.services.related import RelatedResolver
from catalog.services.similarity import ScoredCandidate
from catalog.services.similarity_store import SimilarityStore

pytestmark = pytest.mark.integration

PRODUCTS = [
    {"id": 1, "title": "Red Metal Hammer", "product_type": "Tools", "vendor": "Acme",
     "tags": "red,metal", "price": "10.00"},
    {"id": 2, "title": "Hammer Pro", "product_type": "Tools", "vendor": "Acme",
     "tags": "red,metal,heavy", "price": "12.00", "bestseller_score": 50},
    {"id": 3, "title": "Blue Cup", "product_type": "Kitchen", "vendor": "Other",
     "tags": "blue", "price": "3.00"},
    {"id": 4, "title": "Wrench", "product_type": "Tools", "vendor": "Bolt",
     "tags": "metal", "price": "9.00"},
    {"id": 5, "title": "Holder", "product_type": "Garage", "vendor": "Acme",
     "tags": "", "price": "20.00"},
]


@pytest.fixture
def loaded(test_session):
    BulkLoader(test_session).load(PRODUCTS)
    return test_session


def _store_edges(session, source_id, edges):
    SimilarityStore(session).upsert_edges(
        source_id,
        [ScoredCandidate(target, score) for target, score in edges],
        "fts_mix",
        datetime.now(timezone.utc),
    )
    session.commit()


def test_precomputed_edges_are_returned_best_first(loaded):
    _store_edges(loaded, 1, [(3, 1.0), (5, 7.5), (4, 7.5), (2, 3.0)])

    related = RelatedResolver(loaded).get_related(1, limit=3)

    # 동점은 target id 오름차순
    assert [p.id for p in related] == [4, 5, 2]


def test_dangling_edges_are_filtered(loaded):
    _store_edges(loaded, 1, [(99, 20.0), (2, 9.0)])

    related = RelatedResolver(loaded).get_related(1, limit=5)

    assert [p.id for p in related] == [2]


def test_fallback_scores_on_the_fly_without_edges(loaded):
    related = RelatedResolver(loaded).get_related(1, limit=3)

    # 2: 5 + 5 + 4 - 0.2 + 2*2 / 4: 4 - 0.1 + 2 / 5: 5 - 1.0
    assert [p.id for p in related] == [2, 4, 5]


def test_fallback_never_returns_the_source(loaded):
    related = RelatedResolver(loaded).get_related(3, limit=10)

    assert 3 not in [p.id for p in related]
    assert len(related) == 4


def test_unknown_product_returns_empty(loaded):
    assert RelatedResolver(loaded).get_related(12345) == []


def test_non_positive_limit_returns_empty(loaded):
    assert RelatedResolver(loaded).get_related(1, limit=0) == []


def test_store_error_in_fallback_degrades_to_empty(loaded):
    resolver = RelatedResolver(loaded)

    with mock.patch.object(resolver, "_fallback_query", side_effect=SQLAlchemyError("boom")):
        assert resolver.get_related(1, limit=3) == []
