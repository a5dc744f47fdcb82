import logging
from collections.abc import Iterator
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from catalog.models import Base
from catalog.settings import settings

logger = logging.getLogger(__name__)

FTS_TABLE = "products_fts"

FTS_DDL = f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
    name,
    description,
    category
)
"""


def _ensure_database_dir(bind: Engine) -> None:
    database = make_url(str(bind.url)).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


engine = create_engine(settings.database_url)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


def get_session() -> Iterator[Session]:
    with SessionLocal() as session:
        yield session


def init_schema(bind: Engine) -> bool:
    """
    테이블 생성 + FTS5 인덱스 생성.
    FTS5 모듈이 없는 SQLite 빌드에서는 경고만 남기고 검색 인덱스 없이 진행합니다.

    Returns:
        검색 인덱스 사용 가능 여부
    """
    _ensure_database_dir(bind)
    Base.metadata.create_all(bind=bind)
    try:
        with bind.begin() as conn:
            conn.execute(text(FTS_DDL))
    except OperationalError as e:
        logger.warning(f"[SETUP] FTS5 unavailable, continuing without search index: {e}")
        return False
    logger.info(f"[SETUP] Schema ready: products, {FTS_TABLE}, product_similarities")
    return True


def search_index_available(session: Session) -> bool:
    found = session.execute(
        text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
        {"name": FTS_TABLE},
    ).first()
    return found is not None
