"""
products_fts (SQLite FTS5) 접근 헬퍼.

상품 1건당 rowid = product id 인 검색 행 1건을 유지합니다.
쓰기는 호출자의 트랜잭션 안에서 실행되며 여기서 commit 하지 않습니다.
"""
import logging
import re

from sqlalchemy import text
from sqlalchemy.orm import Session

from catalog.db import FTS_TABLE, search_index_available

logger = logging.getLogger(__name__)

MAX_QUERY_TERMS = 16


def build_match_query(*parts: str | None) -> str:
    """
    Turns free text into a safe FTS5 MATCH expression.
    Every term is quoted so feed punctuation can never be read as query syntax;
    terms are OR-joined and bm25 does the ranking.
    """
    terms: list[str] = []
    seen: set[str] = set()
    for part in parts:
        for term in re.findall(r"[A-Za-z0-9]+", part or ""):
            key = term.lower()
            if key in seen:
                continue
            seen.add(key)
            terms.append(f'"{term}"')
            if len(terms) >= MAX_QUERY_TERMS:
                return " OR ".join(terms)
    return " OR ".join(terms)


class SearchIndex:
    def __init__(self, session: Session, enabled: bool | None = None):
        self.session = session
        self.enabled = search_index_available(session) if enabled is None else enabled

    def replace(self, product_id: int, name: str, description: str | None, category: str | None) -> None:
        if not self.enabled:
            return
        self.delete(product_id)
        self.session.execute(
            text(
                f"INSERT INTO {FTS_TABLE} (rowid, name, description, category) "
                "VALUES (:id, :name, :description, :category)"
            ),
            {"id": product_id, "name": name or "", "description": description or "", "category": category or ""},
        )

    def delete(self, product_id: int) -> None:
        if not self.enabled:
            return
        self.session.execute(text(f"DELETE FROM {FTS_TABLE} WHERE rowid = :id"), {"id": product_id})

    def match_ids(self, query: str, limit: int, exclude_id: int | None = None) -> list[int]:
        """bm25 순으로 정렬된 상품 id 목록"""
        if not self.enabled or not query:
            return []
        rows = self.session.execute(
            text(
                f"SELECT rowid AS id FROM {FTS_TABLE} "
                f"WHERE {FTS_TABLE} MATCH :q AND rowid != :exclude "
                f"ORDER BY bm25({FTS_TABLE}) LIMIT :k"
            ),
            {"q": query, "exclude": -1 if exclude_id is None else exclude_id, "k": limit},
        )
        return [int(row.id) for row in rows]
