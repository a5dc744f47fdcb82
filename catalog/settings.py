from decimal import Decimal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///data/products.sqlite"

    # 피드 입력
    feed_path: str = "data/products.json"
    feed_chunk_size: int = 64 * 1024  # 바이트 단위 읽기 크기

    # 가격 정규화 (임포트 직후 1회만 실행)
    price_scale_factor: Decimal = Decimal("0.4")
    price_floor: Decimal = Decimal("300")
    price_ceiling: Decimal = Decimal("10000")
    pricing_retry_count: int = 3

    # 유사 상품 배치
    similarity_limit_per_product: int = Field(
        default=20,
        validation_alias=AliasChoices("catalog_similarity_limit_per_product", "sim_limit_per_product"),
    )
    related_fallback_pool: int = 50
    related_default_limit: int = 8

    log_level: str = "INFO"

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith("sqlite"):
            raise ValueError("DB URL은 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("feed_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if not 1 <= v <= 16 * 1024 * 1024:
            raise ValueError("feed_chunk_size는 1에서 16MiB 사이여야 합니다.")
        return v

    @field_validator(
        "similarity_limit_per_product",
        "related_fallback_pool",
        "related_default_limit",
        "pricing_retry_count",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("1 이상의 값이어야 합니다.")
        return v

    @field_validator("price_scale_factor")
    @classmethod
    def validate_scale_factor(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("price_scale_factor는 0보다 커야 합니다.")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"알 수 없는 로그 레벨입니다: {v}")
        return level

    @model_validator(mode="after")
    def validate_price_bounds(self) -> "Settings":
        if self.price_ceiling < self.price_floor:
            raise ValueError("price_ceiling은 price_floor 이상이어야 합니다.")
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CATALOG_",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )


settings = Settings()
