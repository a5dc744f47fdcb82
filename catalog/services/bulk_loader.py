"""
피드 레코드 -> products / products_fts 적재.

임포트 1회 전체가 단일 트랜잭션입니다. 적재 도중 실패하면 전체 롤백 후
ImportAbortedError 를 올립니다 (같은 임포트의 일부만 보이는 상태는 없음).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from catalog.exceptions import ImportAbortedError
from catalog.models import Product
from catalog.normalization import (
    coerce_product_id,
    join_tags,
    make_handle,
    min_variant_price,
    parse_bestseller_score,
    parse_feed_datetime,
)
from catalog.services.feed_parser import FeedStats
from catalog.services.search_index import SearchIndex

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_DOMAIN = "local_file"


@dataclass
class ImportReport:
    committed: int = 0
    rejected: int = 0
    skipped: int = 0
    categories: list[str] = field(default_factory=list)
    source_domains: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def build_product_row(record: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Maps one feed record onto products columns. None when the id is unusable."""
    product_id = coerce_product_id(record.get("id"))
    if product_id is None:
        return None

    name = _text(record.get("title") or record.get("name"))
    price, compare_at_price = min_variant_price(record)

    return {
        "id": product_id,
        "name": name,
        "handle": _text(record.get("handle")) or make_handle(name),
        "description": _text(record.get("body_html") or record.get("description")),
        "price": price,
        "compare_at_price": compare_at_price,
        "category": _text(record.get("product_type") or record.get("category")),
        "vendor": _text(record.get("vendor")),
        "tags": join_tags(record.get("tags")),
        "bestseller_score": parse_bestseller_score(record.get("bestseller_score")),
        "source_domain": _text(record.get("source_domain")) or DEFAULT_SOURCE_DOMAIN,
        "source_url": _text(record.get("source_url")),
        "source_created_at": parse_feed_datetime(record.get("created_at")),
        "source_updated_at": parse_feed_datetime(record.get("updated_at")),
        "source_published_at": parse_feed_datetime(record.get("published_at")),
        "raw_json": record,
    }


@dataclass
class BulkLoader:
    """
    Usage:
        parser = FeedParser(path)
        report = BulkLoader(session).load(parser.stream(), parser.stats)
    """

    session: Session
    search_index: Optional[SearchIndex] = None
    progress_every: int = 1000

    def __post_init__(self):
        if self.search_index is None:
            self.search_index = SearchIndex(self.session)

    def upsert(self, row: dict[str, Any]) -> None:
        stmt = insert(Product).values(**row)
        update_cols = {name: stmt.excluded[name] for name in row if name != "id"}
        update_cols["imported_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=update_cols)
        self.session.execute(stmt)
        self.search_index.replace(row["id"], row["name"], row["description"], row["category"])

    def load(self, records: Iterable[dict[str, Any]], parser_stats: Optional[FeedStats] = None) -> ImportReport:
        report = ImportReport()
        categories: dict[str, None] = {}
        domains: dict[str, None] = {}
        start = time.time()
        attempted = 0

        logger.info("[DB] Starting import transaction...")
        try:
            for record in records:
                attempted += 1
                row = build_product_row(record)
                if row is None:
                    report.rejected += 1
                    logger.warning(f"[IMPORT] Record #{attempted} has no usable integer id; rejected.")
                    continue

                self.upsert(row)
                report.committed += 1
                logger.debug(f"[INSERT] Product #{report.committed}: ID={row['id']} Title='{row['name'][:50]}'")

                if row["category"]:
                    categories.setdefault(row["category"], None)
                if row["source_domain"]:
                    domains.setdefault(row["source_domain"], None)

                if report.committed % self.progress_every == 0:
                    elapsed = time.time() - start
                    logger.info(
                        f"[IMPORT] {report.committed} records staged | "
                        f"{report.committed / (elapsed if elapsed > 0 else 0.1):.2f} records/sec"
                    )

            logger.info(f"[DB] Finished staging {report.committed} records. Committing transaction...")
            self.session.commit()
        except Exception as e:
            logger.error(f"[ERROR] Import failed at record #{attempted}. Rolling back transaction: {e}")
            self.session.rollback()
            raise ImportAbortedError(f"Import aborted and rolled back: {e}", attempted=attempted) from e

        report.categories = list(categories)
        report.source_domains = list(domains)
        report.skipped = parser_stats.skipped if parser_stats else 0
        report.elapsed_seconds = round(time.time() - start, 2)
        logger.info(
            f"[DB] Transaction committed. committed={report.committed} rejected={report.rejected} "
            f"skipped={report.skipped} categories={len(report.categories)} domains={len(report.source_domains)}"
        )
        return report
