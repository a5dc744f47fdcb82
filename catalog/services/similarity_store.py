"""
product_similarities 테이블 저장소 + 전체 재계산 배치.

재계산은 테이블을 비우지 않고 (source, target) 단위 upsert 로 갱신한 뒤,
같은 트랜잭션에서 해당 source 의 새 top-K 밖으로 밀려난 엣지만 지웁니다.
동시에 조회하는 쪽은 유지되는 엣지에 대해 항상 이전 값 또는 갱신된 값을 봅니다.
"""
from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from catalog.models import Product, ProductSimilarity
from catalog.services.candidate_seeder import CandidateSeeder
from catalog.services.similarity import ProductSignals, ScoredCandidate, rank_candidates
from catalog.settings import settings

logger = logging.getLogger(__name__)


class SimilarityStore:
    def __init__(self, session: Session):
        self.session = session

    def upsert_edges(
        self,
        source_id: int,
        ranked: Sequence[ScoredCandidate],
        method: str,
        updated_at: datetime,
    ) -> int:
        """Writes one row per (source, target). Self edges are never written."""
        written = 0
        for item in ranked:
            if item.product_id == source_id:
                continue
            stmt = insert(ProductSimilarity).values(
                source_id=source_id,
                target_id=item.product_id,
                score=float(item.score),
                method=method,
                updated_at=updated_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["source_id", "target_id"],
                set_={
                    "score": stmt.excluded.score,
                    "method": stmt.excluded.method,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            self.session.execute(stmt)
            written += 1
        return written

    def prune_edges(self, source_id: int, keep_target_ids: Sequence[int]) -> int:
        """Deletes this source's edges whose target is not in keep_target_ids."""
        stmt = delete(ProductSimilarity).where(ProductSimilarity.source_id == source_id)
        if keep_target_ids:
            stmt = stmt.where(ProductSimilarity.target_id.not_in(list(keep_target_ids)))
        return self.session.execute(stmt.execution_options(synchronize_session=False)).rowcount or 0

    def related_products(self, source_id: int, limit: int) -> list[Product]:
        """
        Precomputed neighbours, best first. Edges whose target no longer
        exists drop out of the join.
        """
        stmt = (
            select(Product)
            .join(ProductSimilarity, ProductSimilarity.target_id == Product.id)
            .where(ProductSimilarity.source_id == source_id)
            .order_by(ProductSimilarity.score.desc(), ProductSimilarity.target_id.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def edges_for(self, source_id: int) -> list[ProductSimilarity]:
        stmt = (
            select(ProductSimilarity)
            .where(ProductSimilarity.source_id == source_id)
            .order_by(ProductSimilarity.score.desc(), ProductSimilarity.target_id.asc())
        )
        return list(self.session.scalars(stmt))

    def edge_count(self, source_id: Optional[int] = None) -> int:
        stmt = select(func.count()).select_from(ProductSimilarity)
        if source_id is not None:
            stmt = stmt.where(ProductSimilarity.source_id == source_id)
        return int(self.session.scalar(stmt) or 0)


@dataclass
class RebuildReport:
    products: int = 0
    sources_with_edges: int = 0
    edges_written: int = 0
    edges_pruned: int = 0
    by_method: dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0


class SimilarityRebuildJob:
    """
    전체 상품을 id 오름차순으로 순회하며 seed -> score -> upsert -> prune 을 수행합니다.
    소스 상품 단위로 커밋하므로 중단 후 재실행해도 안전합니다.
    """

    def __init__(
        self,
        session: Session,
        seeder: Optional[CandidateSeeder] = None,
        store: Optional[SimilarityStore] = None,
        limit: Optional[int] = None,
    ):
        self.session = session
        self.limit = limit or settings.similarity_limit_per_product
        self.seeder = seeder or CandidateSeeder(session, limit=self.limit)
        self.store = store or SimilarityStore(session)

    def _candidate_signals(self, ids: list[int]) -> list[ProductSignals]:
        """Loads candidate rows and returns them in seeder order."""
        if not ids:
            return []
        rows = self.session.scalars(select(Product).where(Product.id.in_(ids))).all()
        by_id = {row.id: ProductSignals.from_product(row) for row in rows}
        return [by_id[i] for i in ids if i in by_id]

    def rebuild_one(self, product: Product, updated_at: datetime) -> tuple[int, int, str]:
        """
        Upserts the fresh top-K for one source, then drops its older edges
        outside that set. Returns (written, pruned, method).
        """
        candidates = self.seeder.seed(product)
        ranked: list[ScoredCandidate] = []
        if candidates.ids:
            source = ProductSignals.from_product(product)
            ranked = rank_candidates(source, self._candidate_signals(candidates.ids), self.limit)
        written = self.store.upsert_edges(product.id, ranked, candidates.method, updated_at)
        pruned = self.store.prune_edges(product.id, [item.product_id for item in ranked])
        return written, pruned, candidates.method

    def run(self) -> RebuildReport:
        report = RebuildReport()
        methods: Counter[str] = Counter()
        start = time.time()
        now = datetime.now(timezone.utc)

        product_ids = list(self.session.scalars(select(Product.id).order_by(Product.id.asc())))
        if not product_ids:
            logger.warning("[SIMILARITY] No products found.")
            return report

        logger.info(f"[SIMILARITY] Rebuilding edges for {len(product_ids)} products (limit={self.limit})")
        for product_id in product_ids:
            product = self.session.get(Product, product_id)
            if product is None:
                continue
            report.products += 1
            try:
                written, pruned, method = self.rebuild_one(product, now)
                self.session.commit()
            except Exception:
                self.session.rollback()
                logger.exception(f"[SIMILARITY] Rebuild failed at product {product_id}")
                raise

            report.edges_pruned += pruned
            if written:
                report.sources_with_edges += 1
                report.edges_written += written
                methods[method] += 1

        report.by_method = dict(methods)
        report.elapsed_seconds = round(time.time() - start, 2)
        logger.info(
            f"[SIMILARITY] Similarity table updated for {report.products} products. "
            f"edges={report.edges_written} pruned={report.edges_pruned} methods={report.by_method}"
        )
        return report
