"""Tests for photo downscaling and compression."""

from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from chromacloset.capture.sources import RawImage
from chromacloset.imgproc.preprocess import (
    GENERAL_MAX_SIDE,
    SPATIAL_MAX_SIDE,
    DecodeError,
    ImagePreprocessor,
    target_size,
)


def test_target_size_never_upscales() -> None:
    assert target_size(800, 600, GENERAL_MAX_SIDE) == (800, 600)
    assert target_size(1024, 10, GENERAL_MAX_SIDE) == (1024, 10)


def test_target_size_pins_longest_side_to_cap() -> None:
    assert target_size(3000, 1500, GENERAL_MAX_SIDE) == (1024, 512)
    assert target_size(1000, 4000, GENERAL_MAX_SIDE) == (256, 1024)
    assert target_size(5000, 1, GENERAL_MAX_SIDE) == (1024, 1)


def test_prepare_keeps_small_images(jpeg_bytes) -> None:
    encoded = ImagePreprocessor().prepare(RawImage(jpeg_bytes(800, 600)))

    assert (encoded.width, encoded.height) == (800, 600)
    assert encoded.mime_type == "image/jpeg"


def test_prepare_uses_larger_cap_for_spatial_detection(jpeg_bytes) -> None:
    preprocessor = ImagePreprocessor()
    raw = RawImage(jpeg_bytes(2000, 1000))

    general = preprocessor.prepare(raw)
    spatial = preprocessor.prepare(raw, spatial=True)

    assert (general.width, general.height) == (GENERAL_MAX_SIDE, 512)
    assert (spatial.width, spatial.height) == (SPATIAL_MAX_SIDE, 600)
    with spatial.open() as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (1200, 600)


def test_prepare_flattens_transparency() -> None:
    buffer = BytesIO()
    Image.new("RGBA", (50, 40), (0, 0, 255, 0)).save(buffer, format="PNG")

    encoded = ImagePreprocessor().prepare(RawImage(buffer.getvalue(), filename="logo.png"))

    with encoded.open() as decoded:
        assert decoded.mode == "RGB"
        red, green, blue = decoded.getpixel((25, 20))
        assert min(red, green, blue) > 240


def test_prepare_rejects_unreadable_payload() -> None:
    with pytest.raises(DecodeError):
        ImagePreprocessor().prepare(RawImage(b"definitely not an image", filename="notes.txt"))


@pytest.mark.asyncio
async def test_prepare_async_matches_sync(jpeg_bytes) -> None:
    raw = RawImage(jpeg_bytes(1500, 1500))

    encoded = await ImagePreprocessor().prepare_async(raw)

    assert (encoded.width, encoded.height) == (1024, 1024)
    assert encoded.as_data_url().startswith("data:image/jpeg;base64,")
