import argparse
import logging
import sys

from sqlalchemy import func, select

from catalog.db import engine, get_session, init_schema
from catalog.exceptions import CatalogError
from catalog.models import Product
from catalog.services.bulk_loader import BulkLoader
from catalog.services.feed_parser import FeedParser
from catalog.services.price_normalizer import PriceNormalizer
from catalog.services.related import RelatedResolver
from catalog.services.similarity_store import SimilarityRebuildJob
from catalog.settings import settings

logger = logging.getLogger("catalog.cli")


def category_counts(session) -> list[tuple[str, int]]:
    rows = session.execute(
        select(Product.category, func.count(Product.id))
        .group_by(Product.category)
        .order_by(Product.category.asc())
    ).all()
    return [(category or "(none)", int(count)) for category, count in rows]


def run_init_db(args) -> None:
    fts = init_schema(engine)
    print(f"Schema ready at {settings.database_url} (search index: {'on' if fts else 'off'})")


def run_import(args) -> None:
    init_schema(engine)
    session = next(get_session())
    try:
        parser = FeedParser(args.path or settings.feed_path)
        report = BulkLoader(session).load(parser.stream(), parser.stats)

        if not args.skip_pricing:
            pricing = PriceNormalizer(session).run()
            logger.info(
                f"[CLI] Pricing: updated={pricing.updated} clamped={pricing.clamped} "
                f"deleted={pricing.deleted} failed={pricing.failed}"
            )

        remaining = int(session.scalar(select(func.count()).select_from(Product)) or 0)
        print("--- Import summary ---")
        print(f"Committed records:    {report.committed}")
        print(f"Rejected (no id):     {report.rejected}")
        print(f"Skipped (corrupt):    {report.skipped}")
        print(f"Remaining after price:{remaining:>6}")
        print(f"Source domains:       {', '.join(report.source_domains) or '-'}")
        print(f"Categories:           {len(report.categories)}")
        for category, count in category_counts(session):
            print(f"  {category}: {count}")
        print(f"Elapsed:              {report.elapsed_seconds}s")
    finally:
        session.close()


def run_rebuild(args) -> None:
    session = next(get_session())
    try:
        report = SimilarityRebuildJob(session, limit=args.limit).run()
        print(
            f"Rebuilt {report.products} products: {report.edges_written} edges "
            f"({report.sources_with_edges} sources) in {report.elapsed_seconds}s {report.by_method}"
        )
    finally:
        session.close()


def run_related(args) -> None:
    session = next(get_session())
    try:
        related = RelatedResolver(session).get_related(args.product_id, args.limit)
        if not related:
            print(f"No related products for {args.product_id}")
        for product in related:
            print(f"{product.id}\t{product.price:.2f}\t{product.vendor or '-'}\t{product.name}")
    finally:
        session.close()


COMMANDS = {
    "init-db": run_init_db,
    "import-feed": run_import,
    "rebuild-similarities": run_rebuild,
    "related": run_related,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Catalog ingestion and similarity CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create tables and the search index")

    import_parser = subparsers.add_parser("import-feed", help="Stream a product feed into the database")
    import_parser.add_argument("path", nargs="?", help=f"Feed file (default: {settings.feed_path})")
    import_parser.add_argument("--skip-pricing", action="store_true", help="Do not run the pricing pass")

    rebuild_parser = subparsers.add_parser("rebuild-similarities", help="Recompute related-product edges")
    rebuild_parser.add_argument("--limit", type=int, default=None, help="Edges per product")

    related_parser = subparsers.add_parser("related", help="Show related products for one product")
    related_parser.add_argument("product_id", type=int)
    related_parser.add_argument("--limit", type=int, default=None)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        handler(args)
    except CatalogError as e:
        logger.exception(f"[CLI] {e.error_code}: {e.message}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)
    return 0


if __name__ == "__main__":
    sys.exit(main())
