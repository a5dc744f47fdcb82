from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def parse_price(value: Any) -> float | None:
    """
    Parses a feed price ("19.99", 19.99, "$1,299.00") into a float.
    Returns None when nothing numeric can be recovered.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def min_variant_price(record: dict) -> tuple[float, float | None]:
    """
    Canonical price of a feed record.

    The cheapest parseable variant price wins when the record carries a
    non-empty variants list; otherwise the record's own price is used.
    Missing prices default to 0. The compare-at price travels with the
    variant that supplied the price.
    """
    variants = record.get("variants")
    if isinstance(variants, list) and variants:
        best: tuple[float, float | None] | None = None
        for variant in variants:
            if not isinstance(variant, dict):
                continue
            price = parse_price(variant.get("price"))
            if price is None:
                continue
            if best is None or price < best[0]:
                best = (price, parse_price(variant.get("compare_at_price")))
        if best is None:
            return 0.0, parse_price(record.get("compare_at_price"))
        return best

    price = parse_price(record.get("price"))
    return (price if price is not None else 0.0), parse_price(record.get("compare_at_price"))


def parse_feed_datetime(value: Any) -> datetime | None:
    """피드 날짜 형식(ISO8601 or ms) 파싱."""
    if not value:
        return None
    try:
        # 1. 밀리세컨드 타임스탬프 (int/str)
        if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
            ts = int(value) / 1000.0
            return datetime.fromtimestamp(ts, tz=timezone.utc)

        # 2. ISO 8601 문자열
        if isinstance(value, str):
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError) as e:
        logger.warning(f"날짜 파싱 실패 ({value}): {e}")
    return None


def make_handle(name: str | None) -> str:
    """'Red Metal Hammer (XL)' -> 'red-metal-hammer-xl'"""
    if not name:
        return ""
    handle = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return handle.strip("-")


def join_tags(value: Any) -> str:
    """Feed tags arrive as a list or as a comma string; both become 'a,b,c'."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value]
    else:
        parts = [p.strip() for p in str(value).split(",")]
    return ",".join(p for p in parts if p)


def coerce_product_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_bestseller_score(value: Any) -> float | None:
    score = parse_price(value)
    if score is None:
        return None
    return max(0.0, min(100.0, score))
