from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class Product(Base):
    """
    피드에서 적재된 상품.
    id는 피드의 상품 ID를 그대로 사용하며 재임포트 시 upsert 키가 됩니다.
    """
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    handle: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    compare_at_price: Mapped[float | None] = mapped_column(Float, nullable=True)

    category: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    vendor: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)  # "red,metal"
    bestseller_score: Mapped[float | None] = mapped_column(Float, nullable=True)  # 0~100

    source_domain: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source_published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # variants 등 관계형으로 모델링하지 않은 필드 보관용 원본
    raw_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price}>"


class ProductSimilarity(Base):
    """
    배치로 계산된 (source, target) 유사도 엣지.
    target 상품이 삭제되어도 엣지는 남으며, 조회 시 조인으로 걸러집니다.
    """
    __tablename__ = "product_similarities"
    __table_args__ = (
        Index("idx_product_similarities_source", "source_id"),
    )

    source_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    target_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    method: Mapped[str] = mapped_column(Text, nullable=False, default="fts_mix")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
