"""
임포트 커밋 이후 1회 실행하는 가격 정규화 패스.

- adjusted = price * F (기본 0.4)
- adjusted < floor  -> 상품 + 검색 인덱스 삭제 (floor 값 자체는 유지)
- adjusted > ceiling -> ceiling 으로 고정
- 행 단위로 독립 커밋하며, 한 행의 실패가 이후 행 처리를 막지 않습니다.

주의: 이미 스케일된 가격에 다시 실행하면 이중으로 스케일됩니다.
임포트 1회당 1번만 실행해야 합니다.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from catalog.models import Product
from catalog.services.search_index import SearchIndex
from catalog.settings import settings

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class PricingReport:
    processed: int = 0
    updated: int = 0
    clamped: int = 0
    deleted: int = 0
    failed: int = 0


@dataclass(frozen=True)
class PriceDecision:
    action: str  # "update" | "delete"
    price: Decimal
    clamped: bool = False


class PriceNormalizer:
    def __init__(
        self,
        session: Session,
        scale_factor: Optional[Decimal] = None,
        floor: Optional[Decimal] = None,
        ceiling: Optional[Decimal] = None,
        retry_attempts: Optional[int] = None,
        search_index: Optional[SearchIndex] = None,
    ):
        self.session = session
        self.scale_factor = Decimal(str(scale_factor if scale_factor is not None else settings.price_scale_factor))
        self.floor = Decimal(str(floor if floor is not None else settings.price_floor))
        self.ceiling = Decimal(str(ceiling if ceiling is not None else settings.price_ceiling))
        self.retry_attempts = retry_attempts or settings.pricing_retry_count
        self.search_index = search_index or SearchIndex(session)

    def decide(self, price: float | Decimal | None) -> PriceDecision:
        adjusted = Decimal(str(price or 0)) * self.scale_factor
        if adjusted < self.floor:
            return PriceDecision("delete", adjusted)
        if adjusted > self.ceiling:
            return PriceDecision("update", self.ceiling, clamped=True)
        return PriceDecision("update", adjusted.quantize(CENT, rounding=ROUND_HALF_UP))

    def _apply_row(self, product_id: int, decision: PriceDecision) -> None:
        try:
            if decision.action == "delete":
                self.session.execute(delete(Product).where(Product.id == product_id))
                self.search_index.delete(product_id)
            else:
                self.session.execute(
                    update(Product).where(Product.id == product_id).values(price=float(decision.price))
                )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"[PRICING] Retrying row ({retry_state.attempt_number}): {retry_state.outcome.exception()}"
            ),
        )

    def run(self) -> PricingReport:
        logger.info("[PRICING] Starting pricing logic and filtering...")
        rows = self.session.execute(
            select(Product.id, Product.price).order_by(Product.price.asc(), Product.id.asc())
        ).all()
        logger.info(f"[PRICING] Loaded {len(rows)} records for pricing operations.")

        report = PricingReport()
        retrying = self._retrying()
        for product_id, price in rows:
            report.processed += 1
            decision = self.decide(price)
            try:
                retrying(self._apply_row, product_id, decision)
            except SQLAlchemyError as e:
                report.failed += 1
                logger.error(f"[PRICING] Row {product_id} failed, continuing: {e}")
                continue

            if decision.action == "delete":
                report.deleted += 1
            else:
                report.updated += 1
                if decision.clamped:
                    report.clamped += 1

        logger.info(
            f"[PRICING] Pricing logic complete. updated={report.updated} clamped={report.clamped} "
            f"removed={report.deleted} (below {self.floor}) failed={report.failed}"
        )
        return report
