"""
Catalog Exception Classes

임포트/배치 작업에서 호출자에게 전달되는 치명적 오류 정의.
파싱 단계의 개별 객체 오류는 예외가 아니라 skip 카운트로 처리됩니다.
"""
from typing import Any, Dict, Optional


class CatalogError(Exception):
    """
    Base exception for catalog jobs

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        context: 추가 컨텍스트 정보
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class FeedSourceError(CatalogError):
    """Feed source is missing, unreadable, or was already consumed."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        super().__init__(message, context={"source": source}, **kwargs)
        self.source = source


class ImportAbortedError(CatalogError):
    """
    Raised after the import transaction was rolled back.

    Attributes:
        attempted: 롤백 전까지 시도된 레코드 수
    """

    def __init__(self, message: str, attempted: int = 0, **kwargs):
        super().__init__(message, context={"attempted": attempted}, **kwargs)
        self.attempted = attempted
