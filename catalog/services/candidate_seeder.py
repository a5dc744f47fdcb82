import logging
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from catalog.models import Product
from catalog.services.search_index import SearchIndex, build_match_query
from catalog.settings import settings

logger = logging.getLogger(__name__)

METHOD_FTS = "fts_mix"
METHOD_HEURISTIC = "heuristic"


@dataclass(frozen=True)
class CandidateSet:
    ids: list[int] = field(default_factory=list)
    method: str = METHOD_HEURISTIC


class CandidateSeeder:
    """
    소스 상품 1건에 대해 비교 후보 id를 최대 N개 제안합니다.
    검색 인덱스가 있으면 name + category 기반 FTS 매칭, 없으면 무작위 샘플링.
    """

    def __init__(self, session: Session, limit: int | None = None, search_index: SearchIndex | None = None):
        self.session = session
        self.limit = limit or settings.similarity_limit_per_product
        self.search_index = search_index or SearchIndex(session)

    def seed(self, product: Product) -> CandidateSet:
        name = (product.name or "").strip()
        if self.search_index.enabled and name:
            query = build_match_query(name, product.category)
            if query:
                try:
                    ids = self.search_index.match_ids(query, self.limit, exclude_id=product.id)
                    return CandidateSet(ids, METHOD_FTS)
                except OperationalError as e:
                    logger.warning(f"[SIMILARITY] FTS query rejected for product {product.id}, sampling instead: {e}")
        return CandidateSet(self.sample(product.id), METHOD_HEURISTIC)

    def sample(self, exclude_id: int) -> list[int]:
        stmt = (
            select(Product.id)
            .where(Product.id != exclude_id)
            .order_by(func.random())
            .limit(self.limit)
        )
        return list(self.session.scalars(stmt))
