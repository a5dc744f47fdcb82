"""
상품 간 휴리스틱 유사도 점수.

score = 5.0 (같은 vendor) + 4.0 (같은 category) + 2.0 * 공통 태그 수
        - 가격 차이 페널티 + bestseller_score / 10
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

VENDOR_WEIGHT = 5.0
CATEGORY_WEIGHT = 4.0
TAG_WEIGHT = 2.0
BESTSELLER_DIVISOR = 10.0


def parse_tags(tags: Optional[str]) -> frozenset[str]:
    if not tags:
        return frozenset()
    return frozenset(t.strip() for t in tags.split(",") if t.strip())


@dataclass(frozen=True)
class ProductSignals:
    id: int
    vendor: str = ""
    category: str = ""
    tags: frozenset[str] = frozenset()
    price: float = 0.0
    bestseller_score: Optional[float] = None

    @classmethod
    def from_product(cls, product) -> "ProductSignals":
        """Accepts a Product or any row exposing the same attribute names."""
        return cls(
            id=int(product.id),
            vendor=product.vendor or "",
            category=product.category or "",
            tags=parse_tags(product.tags),
            price=float(product.price or 0.0),
            bestseller_score=product.bestseller_score,
        )


@dataclass(frozen=True)
class ScoredCandidate:
    product_id: int
    score: float


def price_penalty(source_price: float, candidate_price: float) -> float:
    if source_price == 0:
        return 0.0
    return abs(candidate_price - source_price) / source_price


def score_candidate(source: ProductSignals, candidate: ProductSignals) -> float:
    score = 0.0
    if source.vendor and candidate.vendor == source.vendor:
        score += VENDOR_WEIGHT
    if source.category and candidate.category == source.category:
        score += CATEGORY_WEIGHT
    score += TAG_WEIGHT * len(source.tags & candidate.tags)
    score -= price_penalty(source.price, candidate.price)
    if candidate.bestseller_score is not None:
        score += float(candidate.bestseller_score) / BESTSELLER_DIVISOR
    return score


def rank_candidates(
    source: ProductSignals,
    candidates: Iterable[ProductSignals],
    limit: int,
) -> list[ScoredCandidate]:
    """
    Scores every candidate, sorts descending (stable, so equal scores keep
    candidate order) and keeps the top `limit`. The source never ranks
    against itself.
    """
    scored = [
        ScoredCandidate(candidate.id, score_candidate(source, candidate))
        for candidate in candidates
        if candidate.id != source.id
    ]
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[: max(0, limit)]
