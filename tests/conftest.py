"""Pytest configuration and fixtures."""

import json

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from catalog.db import FTS_TABLE, init_schema
from catalog.models import Base


# 테스트용 메모리 SQLite 엔진 (모든 커넥션이 같은 메모리 DB를 공유)
TEST_DATABASE_URL = "sqlite://"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,  # 테스트 로그 줄이기
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 스키마 + FTS5 인덱스를 새로 생성.
    """
    init_schema(test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with test_engine.begin() as conn:
            conn.execute(text(f"DROP TABLE IF EXISTS {FTS_TABLE}"))
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """
    기존 코드 호환용 alias.
    test_session과 동일하게 동작.
    """
    yield test_session


@pytest.fixture
def feed_file(tmp_path):
    """레코드 리스트를 {"products": [...]} 피드 파일로 기록하는 헬퍼."""

    def _write(records, name="products.json", raw: bytes | None = None):
        path = tmp_path / name
        if raw is not None:
            path.write_bytes(raw)
        else:
            path.write_text(json.dumps({"products": records}), encoding="utf-8")
        return path

    return _write


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (메모리 SQLite 사용)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
