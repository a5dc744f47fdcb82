"""
카탈로그 API 계층이 사용하는 읽기 전용 조회 서비스.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import and_, func, literal, or_, select
from sqlalchemy.orm import Session, load_only

from catalog.models import Product
from catalog.services.search_index import SearchIndex, build_match_query

logger = logging.getLogger(__name__)

ALLOWED_PRODUCT_FIELDS = (
    "id",
    "name",
    "handle",
    "description",
    "price",
    "compare_at_price",
    "category",
    "tags",
    "vendor",
    "bestseller_score",
    "raw_json",
)

FEATURED_LIMIT = 8


def has_tag(tag: str):
    """tags 컬럼("a,b,c")에서 쉼표 구분 토큰 전체가 일치하는 조건"""
    return (literal(",") + Product.tags + literal(",")).like(f"%,{tag},%")


@dataclass(frozen=True)
class Collection:
    where: Any
    order_by: tuple
    paginated: bool = True
    fixed_limit: Optional[int] = None


COLLECTIONS: dict[str, Collection] = {
    "all": Collection(where=None, order_by=(Product.id.asc(),)),
    "featured": Collection(
        where=has_tag("featured"),
        order_by=(func.random(),),
        paginated=False,
        fixed_limit=FEATURED_LIMIT,
    ),
    "sale": Collection(
        where=and_(Product.compare_at_price.is_not(None), Product.compare_at_price > Product.price),
        order_by=(Product.price.asc(),),
    ),
    "new": Collection(where=None, order_by=(Product.id.desc(),)),
    "bestsellers": Collection(where=None, order_by=(Product.bestseller_score.desc(), Product.id.desc())),
    "trending": Collection(where=None, order_by=(Product.price.desc(), Product.id.desc())),
}


def select_fields(fields: Optional[str]) -> list[str]:
    """
    "name, price, bogus" -> ["name", "price", "id"]
    허용되지 않은 필드는 버리고, 유효한 필드가 없으면 빈 리스트(전체 컬럼).
    """
    if not fields:
        return []
    requested = [f.strip() for f in fields.split(",") if f.strip()]
    valid = [f for f in dict.fromkeys(requested) if f in ALLOWED_PRODUCT_FIELDS]
    if valid and "id" not in valid:
        valid.append("id")
    return valid


class ProductQueryService:
    def __init__(self, session: Session, search_index: Optional[SearchIndex] = None):
        self.session = session
        self.search_index = search_index or SearchIndex(session)

    def _with_fields(self, stmt, fields: Optional[str]):
        columns = select_fields(fields)
        if columns:
            stmt = stmt.options(load_only(*[getattr(Product, c) for c in columns]))
        return stmt

    def get_products(self, page: int, limit: int) -> list[Product]:
        page, limit = max(1, page), max(1, limit)
        stmt = select(Product).order_by(Product.id.asc()).limit(limit).offset((page - 1) * limit)
        return list(self.session.scalars(stmt))

    def get_total_products(self) -> int:
        return int(self.session.scalar(select(func.count()).select_from(Product)) or 0)

    def search_products(self, query: str, fields: Optional[str] = None) -> list[Product]:
        match = build_match_query(query)
        if not match:
            return []

        if self.search_index.enabled:
            ids = self.search_index.match_ids(match, limit=-1)
            if not ids:
                return []
            stmt = self._with_fields(select(Product).where(Product.id.in_(ids)), fields)
            by_id = {p.id: p for p in self.session.scalars(stmt)}
            return [by_id[i] for i in ids if i in by_id]

        # 검색 인덱스가 없는 환경: LIKE 매칭
        logger.debug(f"[SEARCH] No search index; LIKE match for {query!r}")
        pattern = f"%{query.strip()}%"
        stmt = select(Product).where(
            or_(
                Product.name.like(pattern),
                Product.description.like(pattern),
                Product.category.like(pattern),
            )
        ).order_by(Product.id.asc())
        return list(self.session.scalars(self._with_fields(stmt, fields)))

    def get_product_by_id_or_handle(self, key: str | int) -> Optional[Product]:
        key = str(key).strip()
        if key.isdigit():
            return self.session.get(Product, int(key))
        return self.session.scalars(select(Product).where(Product.handle == key).limit(1)).first()

    def get_products_in_collection(
        self,
        handle: str,
        page: int = 1,
        limit: int = 50,
        fields: Optional[str] = None,
    ) -> list[Product]:
        collection = COLLECTIONS.get((handle or "").lower())
        if collection is None:
            return []

        if collection.fixed_limit is not None:
            limit = collection.fixed_limit
        limit = max(1, limit)
        offset = (max(1, page) - 1) * limit if collection.paginated else 0

        stmt = select(Product)
        if collection.where is not None:
            stmt = stmt.where(collection.where)
        stmt = stmt.order_by(*collection.order_by).limit(limit).offset(offset)
        return list(self.session.scalars(self._with_fields(stmt, fields)))

    def get_total_collection_products(self, handle: str) -> int:
        collection = COLLECTIONS.get((handle or "").lower())
        if collection is None:
            return 0
        stmt = select(func.count()).select_from(Product)
        if collection.where is not None:
            stmt = stmt.where(collection.where)
        return int(self.session.scalar(stmt) or 0)
