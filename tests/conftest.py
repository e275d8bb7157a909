"""Shared fixtures for the test-suite."""

from __future__ import annotations

from io import BytesIO
from typing import Any, Callable

import numpy as np
import pytest
from PIL import Image

from chromacloset.config.settings import Settings
from chromacloset.extraction.client import ExtractedItem, ExtractionMode, ExtractionResult
from chromacloset.imgproc.preprocess import EncodedImage
from chromacloset.models import Category, PatternType, WardrobeItem


class StubExtractor:
    """Replays queued extraction results (or raises queued exceptions)."""

    def __init__(self, *results: ExtractionResult | BaseException) -> None:
        self.results = list(results)
        self.calls: list[ExtractionMode] = []

    async def extract(self, image: EncodedImage, mode: ExtractionMode) -> ExtractionResult:
        self.calls.append(mode)
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeCapture:
    """Stands in for ``cv2.VideoCapture``."""

    def __init__(self, opened: bool = True, frames: int = 100) -> None:
        self.opened = opened
        self.frames = frames
        self.released = 0

    def isOpened(self) -> bool:  # noqa: N802 - mirrors the OpenCV API
        return self.opened

    def read(self) -> tuple[bool, Any]:
        if self.frames <= 0:
            return False, None
        self.frames -= 1
        frame = np.zeros((120, 160, 3), dtype=np.uint8)
        frame[:, :, 2] = 220
        return True, frame

    def release(self) -> None:
        self.released += 1


@pytest.fixture
def settings() -> Settings:
    return Settings(ai_api_key="test-key", ai_base_url="https://ai.test/v1", ai_request_timeout=5.0)


@pytest.fixture
def jpeg_bytes() -> Callable[..., bytes]:
    def _make(width: int = 320, height: int = 240, color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
        buffer = BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_extracted() -> Callable[..., ExtractedItem]:
    def _make(**fields: Any) -> ExtractedItem:
        record = {
            "category": "top",
            "subcategory": "t-shirt",
            "dominantColorHex": "#c81e1e",
            "colorFamily": "Red",
            "colorName": "Crimson",
            "confidence": 0.9,
        }
        record.update(fields)
        return ExtractedItem.model_validate(record)

    return _make


@pytest.fixture
def make_item() -> Callable[..., WardrobeItem]:
    counter = iter(range(1, 10_000))

    def _make(**fields: Any) -> WardrobeItem:
        index = next(counter)
        values: dict[str, Any] = {
            "id": f"item-{index}",
            "category": Category.TOP,
            "subcategory": "t-shirt",
            "brand": "Unknown",
            "image_ref": "data:image/jpeg;base64,",
            "dominant_color_hex": "#112233",
            "color_family": "Blue",
            "color_name": "Navy",
            "pattern_type": PatternType.SOLID,
            "confidence": 0.9,
            "created_at": 1_700_000_000_000 + index,
        }
        values.update(fields)
        return WardrobeItem(**values)

    return _make


@pytest.fixture
def stub_extractor() -> Callable[..., StubExtractor]:
    return StubExtractor


@pytest.fixture
def fake_capture() -> Callable[..., FakeCapture]:
    return FakeCapture
