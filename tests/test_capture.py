"""Tests for upload and camera capture sources."""

from __future__ import annotations

from io import BytesIO

import pytest
import pytest_mock
from PIL import Image
from prometheus_client import REGISTRY

from chromacloset.capture.sources import (
    CaptureMode,
    DeviceAccessDenied,
    LiveCameraSource,
    NoFileSelected,
    UploadSource,
)


def _camera_gauge() -> float:
    return REGISTRY.get_sample_value("camera_active") or 0.0


@pytest.mark.asyncio
async def test_upload_returns_selected_bytes() -> None:
    source = UploadSource(b"\xff\xd8payload", filename="shirt.jpg", content_type="image/jpeg")

    raw = await source.acquire()

    assert source.mode is CaptureMode.UPLOAD
    assert raw.data == b"\xff\xd8payload"
    assert raw.filename == "shirt.jpg"
    assert not source.active


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, b""])
async def test_upload_without_file_is_cancellation(payload) -> None:
    with pytest.raises(NoFileSelected):
        await UploadSource(payload).acquire()


@pytest.mark.asyncio
async def test_upload_reads_and_closes_async_file(mocker: pytest_mock.MockerFixture) -> None:
    upload = mocker.Mock()
    upload.filename = "jacket.png"
    upload.content_type = "image/png"
    upload.read = mocker.AsyncMock(return_value=b"png-bytes")
    upload.close = mocker.AsyncMock(return_value=None)
    source = UploadSource(upload)

    raw = await source.acquire()
    await source.close()

    assert raw.data == b"png-bytes"
    assert raw.filename == "jacket.png"
    assert raw.content_type == "image/png"
    upload.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_camera_captures_jpeg_and_releases(fake_capture) -> None:
    capture = fake_capture()
    source = LiveCameraSource(capture_factory=lambda index: capture)
    before = _camera_gauge()

    raw = await source.acquire()

    assert source.active
    assert _camera_gauge() == before + 1
    with Image.open(BytesIO(raw.data)) as frame:
        assert frame.format == "JPEG"
        assert frame.size == (160, 120)

    await source.close()
    await source.close()

    assert not source.active
    assert capture.released == 1
    assert _camera_gauge() == before


@pytest.mark.asyncio
async def test_camera_denied_releases_device(fake_capture) -> None:
    capture = fake_capture(opened=False)
    source = LiveCameraSource(device_index=3, capture_factory=lambda index: capture)

    with pytest.raises(DeviceAccessDenied) as excinfo:
        await source.acquire()

    assert excinfo.value.device == 3
    assert not source.active
    assert capture.released == 1


@pytest.mark.asyncio
async def test_camera_that_stops_delivering_frames(fake_capture) -> None:
    capture = fake_capture(frames=0)

    async with LiveCameraSource(capture_factory=lambda index: capture) as source:
        with pytest.raises(DeviceAccessDenied):
            await source.capture_frame()

    assert capture.released == 1


@pytest.mark.asyncio
async def test_camera_context_manager_releases_on_error(fake_capture) -> None:
    capture = fake_capture()

    with pytest.raises(RuntimeError):
        async with LiveCameraSource(capture_factory=lambda index: capture):
            raise RuntimeError("boom")

    assert capture.released == 1


@pytest.mark.asyncio
async def test_camera_preview_yields_until_closed(fake_capture) -> None:
    source = LiveCameraSource(capture_factory=lambda index: fake_capture())
    await source.open()

    frames = []
    async for frame in source.preview(interval=0):
        frames.append(frame)
        if len(frames) == 3:
            await source.close()

    assert len(frames) == 3
