"""
대용량 상품 피드 스트리밍 파서.

{"products": [ {...}, {...} ]} 또는 [ {...} ] 형태의 문서를 전체 로드 없이
객체 단위로 잘라내어 dict 로 yield 합니다.

- 중괄호 깊이 카운터로 최상위 객체 경계를 찾습니다.
- 객체별로 제어 문자 제거 + ASCII 음역 정리 후 JSON 디코드를 시도합니다.
- 복구 불가능한 객체는 skip 카운트만 올리고 스트림은 계속됩니다.
- 입력 소스를 열 수 없는 경우에만 FeedSourceError 로 즉시 실패합니다.
"""
from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Iterator

from catalog.exceptions import FeedSourceError
from catalog.settings import settings

logger = logging.getLogger(__name__)

# 0x00-0x1F (탭/CR/LF 제외) + DEL
_CONTROL_BYTES = bytes(b for b in range(32) if b not in (9, 10, 13)) + b"\x7f"

_OPEN = ord("{")
_INSIDE_OBJECT = re.compile(rb"[{}]")


@dataclass
class FeedStats:
    objects_seen: int = 0
    yielded: int = 0
    skipped: int = 0
    max_buffer_bytes: int = 0


def clean_object_text(raw: bytes) -> str:
    """
    Two-pass cleanup of one candidate object.

    Pass A drops control bytes (tab, CR and LF survive). Pass B decodes
    leniently and folds the text down to 7-bit ASCII; code points without an
    ASCII form are discarded, which also removes whatever invalid byte
    sequences upstream corruption left behind.
    """
    stripped = raw.translate(None, _CONTROL_BYTES)
    text = stripped.decode("utf-8", errors="ignore")
    folded = unicodedata.normalize("NFKD", text).encode("ascii", errors="ignore")
    return folded.decode("ascii").strip()


def decode_record(raw: bytes) -> tuple[dict[str, Any] | None, str | None]:
    """Returns (record, None) or (None, reason)."""
    text = clean_object_text(raw)
    if not text:
        return None, "entirely stripped by cleanup"
    try:
        value = json.loads(text, strict=False)
    except (ValueError, RecursionError) as e:
        return None, str(e)
    if not isinstance(value, dict) or not value:
        return None, f"not a product object ({type(value).__name__})"
    return value, None


class FeedParser:
    """
    Single-use streaming parser over a path or a binary file object.

    Usage:
        parser = FeedParser("data/products.json")
        for record in parser.stream():
            ...
        parser.stats.skipped
    """

    def __init__(self, source: str | Path | BinaryIO, chunk_size: int | None = None):
        self.source = source
        self.chunk_size = chunk_size or settings.feed_chunk_size
        self.stats = FeedStats()
        self._started = False

    @property
    def source_name(self) -> str:
        if isinstance(self.source, (str, Path)):
            return str(self.source)
        return getattr(self.source, "name", repr(self.source))

    def stream(self) -> Iterator[dict[str, Any]]:
        """
        Opens the source right away (so a bad path fails before any record)
        and returns the lazy record iterator.
        """
        if self._started:
            raise FeedSourceError("Feed stream was already consumed; create a new parser.", source=self.source_name)
        self._started = True
        handle, owned = self._open()
        return self._records(handle, owned)

    def _open(self) -> tuple[BinaryIO, bool]:
        if not isinstance(self.source, (str, Path)):
            if not hasattr(self.source, "read"):
                raise FeedSourceError(f"Unsupported feed source: {self.source!r}", source=self.source_name)
            return self.source, False

        path = Path(self.source)
        if not path.is_file():
            raise FeedSourceError(f"Product JSON file not found at: {path}", source=str(path))
        try:
            return path.open("rb"), True
        except OSError as e:
            raise FeedSourceError(f"Could not open JSON file for reading: {path} ({e})", source=str(path)) from e

    def _records(self, handle: BinaryIO, owned: bool) -> Iterator[dict[str, Any]]:
        logger.info(f"[STREAM] Starting streaming of {self.source_name}")
        try:
            for raw in self._objects(handle):
                self.stats.objects_seen += 1
                record, reason = decode_record(raw)
                if record is None:
                    self.stats.skipped += 1
                    logger.warning(
                        f"[STREAM ERROR] Skipping object #{self.stats.objects_seen} "
                        f"({len(raw)} bytes): {reason}"
                    )
                    continue
                self.stats.yielded += 1
                yield record
        finally:
            if owned:
                handle.close()
            logger.info(
                f"[STREAM] Streaming finished. yielded={self.stats.yielded} "
                f"skipped={self.stats.skipped} peak_buffer={self.stats.max_buffer_bytes}B"
            )

    def _read_chunks(self, handle: BinaryIO) -> Iterator[bytes]:
        while True:
            try:
                chunk = handle.read(self.chunk_size)
            except OSError as e:
                raise FeedSourceError(f"Read error while streaming feed: {e}", source=self.source_name) from e
            if not chunk:
                return
            yield chunk

    def _objects(self, handle: BinaryIO) -> Iterator[bytes]:
        """
        Yields the raw bytes of each top-level object of the products array.
        Only the object currently being assembled is held in memory.
        """
        in_array = False
        depth = 0
        buffer = bytearray()

        for chunk in self._read_chunks(handle):
            pos = 0
            size = len(chunk)
            seg_start = 0

            if not in_array:
                idx = chunk.find(b"[")
                if idx == -1:
                    continue
                in_array = True
                pos = idx + 1

            while pos < size:
                if depth == 0:
                    # 객체 사이의 쉼표, 공백, 짝 없는 } ] 는 모두 버림
                    idx = chunk.find(b"{", pos)
                    if idx == -1:
                        break
                    depth = 1
                    seg_start = idx
                    pos = idx + 1
                    continue

                m = _INSIDE_OBJECT.search(chunk, pos)
                if m is None:
                    break
                pos = m.end()
                if chunk[m.start()] == _OPEN:
                    depth += 1
                    continue
                depth -= 1
                if depth == 0:
                    buffer += chunk[seg_start:pos]
                    self._track_buffer(len(buffer))
                    yield bytes(buffer)
                    buffer.clear()

            if depth > 0:
                buffer += chunk[seg_start:]
                self._track_buffer(len(buffer))

        if not in_array:
            logger.warning(f"[STREAM] No '[' found in {self.source_name}; feed contains no products array.")
        elif depth > 0:
            self.stats.objects_seen += 1
            self.stats.skipped += 1
            logger.warning(
                f"[STREAM ERROR] Input ended inside object #{self.stats.objects_seen} "
                f"({len(buffer)} bytes buffered). Skipping."
            )

    def _track_buffer(self, size: int) -> None:
        if size > self.stats.max_buffer_bytes:
            self.stats.max_buffer_bytes = size
