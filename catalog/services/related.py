"""
요청 시점 연관 상품 조회.

1) product_similarities 에 저장된 배치 결과를 점수순으로 사용
2) 없으면 DB 안에서 vendor/category/bestseller/가격 근접도로 즉석 점수 계산 후
   상위 후보를 태그 겹침으로 메모리에서 재정렬

결과가 없는 것은 오류가 아니라 빈 리스트입니다.
"""
import logging
from typing import Optional

from sqlalchemy import Float, case, func, literal, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog.models import Product
from catalog.services.similarity import (
    BESTSELLER_DIVISOR,
    CATEGORY_WEIGHT,
    TAG_WEIGHT,
    VENDOR_WEIGHT,
    parse_tags,
)
from catalog.services.similarity_store import SimilarityStore
from catalog.settings import settings

logger = logging.getLogger(__name__)


class RelatedResolver:
    def __init__(
        self,
        session: Session,
        store: Optional[SimilarityStore] = None,
        fallback_pool: Optional[int] = None,
    ):
        self.session = session
        self.store = store or SimilarityStore(session)
        self.fallback_pool = fallback_pool or settings.related_fallback_pool

    def get_related(self, product_id: int, limit: Optional[int] = None) -> list[Product]:
        limit = settings.related_default_limit if limit is None else limit
        if limit <= 0:
            return []

        precomputed = self.store.related_products(product_id, limit)
        if precomputed:
            return precomputed

        logger.debug(f"[RELATED] No stored edges for {product_id}; scoring on the fly")
        return self.fallback(product_id, limit)

    def fallback(self, product_id: int, limit: int) -> list[Product]:
        try:
            source = self.session.get(Product, product_id)
            if source is None:
                return []
            scored = self.session.execute(self._fallback_query(source, max(limit, self.fallback_pool))).all()
        except SQLAlchemyError as e:
            logger.error(f"[RELATED] Fallback scoring failed for {product_id}: {e}")
            return []

        source_tags = parse_tags(source.tags)
        reranked = [
            (product, float(base) + TAG_WEIGHT * len(source_tags & parse_tags(product.tags)))
            for product, base in scored
        ]
        reranked.sort(key=lambda item: item[1], reverse=True)
        return [product for product, _ in reranked[:limit]]

    def _fallback_query(self, source: Product, pool: int):
        score = func.coalesce(Product.bestseller_score, 0.0) / BESTSELLER_DIVISOR
        if source.vendor:
            score = score + case((Product.vendor == source.vendor, VENDOR_WEIGHT), else_=0.0)
        if source.category:
            score = score + case((Product.category == source.category, CATEGORY_WEIGHT), else_=0.0)
        if source.price:
            source_price = literal(float(source.price), Float)
            score = score - func.abs(Product.price - source_price) / source_price

        score = score.label("score")
        return (
            select(Product, score)
            .where(Product.id != source.id)
            .order_by(score.desc(), Product.id.asc())
            .limit(pool)
        )
