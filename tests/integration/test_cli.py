import json
from unittest import mock

import pytest
from sqlalchemy.orm import Session

from catalog import cli
from catalog.models import Product

pytestmark = pytest.mark.integration


@pytest.fixture
def cli_db(test_session):
    """CLI가 테스트 엔진/세션을 사용하도록 패치."""
    test_engine = test_session.get_bind()

    def _sessions():
        with Session(bind=test_engine, expire_on_commit=False) as session:
            yield session

    with mock.patch.object(cli, "engine", test_engine), mock.patch.object(cli, "get_session", _sessions):
        yield test_session


def _feed(tmp_path):
    path = tmp_path / "feed.json"
    records = [
        {"id": 1, "title": "Steel Hammer", "product_type": "Tools", "vendor": "Acme", "price": "1000"},
        {"id": 2, "title": "Tiny Nail", "product_type": "Tools", "vendor": "Acme", "price": "100"},
        {"id": 3, "title": "Garden Hose", "product_type": "Garden", "vendor": "Green", "price": "2000"},
    ]
    path.write_text(json.dumps({"products": records}), encoding="utf-8")
    return path


def test_import_feed_prints_summary(cli_db, tmp_path, capsys):
    assert cli.main(["import-feed", str(_feed(tmp_path))]) == 0

    out = capsys.readouterr().out
    assert "Committed records:    3" in out
    assert "Tools: 1" in out
    assert "Garden: 1" in out
    # 100 * 0.4 < 300 이므로 삭제
    assert cli_db.get(Product, 2) is None


def test_import_feed_skip_pricing_keeps_raw_prices(cli_db, tmp_path):
    cli.main(["import-feed", str(_feed(tmp_path)), "--skip-pricing"])

    assert cli_db.get(Product, 2).price == 100.0


def test_missing_feed_exits_with_status_one(cli_db, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["import-feed", str(tmp_path / "missing.json")])
    assert excinfo.value.code == 1


def test_rebuild_then_related(cli_db, tmp_path, capsys):
    cli.main(["import-feed", str(_feed(tmp_path)), "--skip-pricing"])
    capsys.readouterr()

    assert cli.main(["rebuild-similarities", "--limit", "5"]) == 0
    assert cli.main(["related", "1", "--limit", "2"]) == 0

    out = capsys.readouterr().out
    assert "Rebuilt 3 products" in out
