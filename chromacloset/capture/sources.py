"""Image acquisition from user uploads and live camera devices."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

import cv2

from chromacloset.monitoring.metrics import camera_active

logger = logging.getLogger(__name__)


class NoFileSelected(LookupError):
    """Raised when the user dismissed the picker without choosing a file."""


class DeviceAccessDenied(PermissionError):
    """Raised when the camera cannot be opened or stops delivering frames."""

    def __init__(
        self,
        message: str = "Camera access was denied. You can still upload a photo instead.",
        device: int | None = None,
    ) -> None:
        self.device = device
        super().__init__(message)


class CaptureMode(str, Enum):
    """Acquisition paths a scan can use."""

    UPLOAD = "upload"
    CAMERA = "camera"


@dataclass(frozen=True, slots=True)
class RawImage:
    """Undecoded image bytes as delivered by a capture source."""

    data: bytes
    filename: str | None = None
    content_type: str | None = None


class CaptureSource(Protocol):
    """Anything able to hand over one raw image on request."""

    mode: CaptureMode

    @property
    def active(self) -> bool: ...

    async def acquire(self) -> RawImage: ...

    async def close(self) -> None: ...


class _AsyncReadable(Protocol):
    async def read(self) -> bytes: ...


class UploadSource:
    """Wraps one user-selected file (raw bytes or an async file object)."""

    mode = CaptureMode.UPLOAD

    def __init__(
        self,
        payload: bytes | _AsyncReadable | None,
        *,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> None:
        self._payload = payload
        self._filename = filename or getattr(payload, "filename", None)
        self._content_type = content_type or getattr(payload, "content_type", None)

    @property
    def active(self) -> bool:
        return False

    async def acquire(self) -> RawImage:
        """Return the selected file, raising ``NoFileSelected`` if there is none."""

        payload = self._payload
        if payload is None:
            raise NoFileSelected("No file was selected.")
        data = payload if isinstance(payload, (bytes, bytearray)) else await payload.read()
        if not data:
            raise NoFileSelected("The selected file is empty.")
        return RawImage(data=bytes(data), filename=self._filename, content_type=self._content_type)

    async def close(self) -> None:
        close = getattr(self._payload, "close", None)
        if close is None:
            return
        result = close()
        if asyncio.iscoroutine(result):
            await result


CaptureFactory = Callable[[int], Any]


class LiveCameraSource:
    """Holds a camera device open for previews and on-demand frame capture.

    Use it as an async context manager: the device is released on every exit
    path, including errors and task cancellation.
    """

    mode = CaptureMode.CAMERA

    def __init__(
        self,
        device_index: int = 0,
        *,
        capture_factory: CaptureFactory = cv2.VideoCapture,
        jpeg_quality: int = 90,
    ) -> None:
        self._device_index = device_index
        self._capture_factory = capture_factory
        self._jpeg_quality = jpeg_quality
        self._capture: Any | None = None
        self._lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self._capture is not None

    async def open(self) -> None:
        """Acquire exclusive access to the device."""

        async with self._lock:
            if self._capture is not None:
                return
            capture = await asyncio.to_thread(self._capture_factory, self._device_index)
            if not capture.isOpened():
                await asyncio.to_thread(capture.release)
                logger.warning("Camera %s could not be opened.", self._device_index)
                raise DeviceAccessDenied(device=self._device_index)
            self._capture = capture
            camera_active.inc()
            logger.info("Camera %s opened.", self._device_index)

    async def capture_frame(self) -> RawImage:
        """Snapshot the current frame as JPEG bytes."""

        capture = self._capture
        if capture is None:
            raise RuntimeError("Camera is not open.")
        ok, frame = await asyncio.to_thread(capture.read)
        if not ok or frame is None:
            raise DeviceAccessDenied(
                "The camera stopped delivering frames. Try again or upload a photo.",
                device=self._device_index,
            )
        encoded_ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self._jpeg_quality])
        if not encoded_ok:
            raise DeviceAccessDenied("The camera frame could not be encoded.", device=self._device_index)
        return RawImage(data=buffer.tobytes(), filename="camera-frame.jpg", content_type="image/jpeg")

    async def acquire(self) -> RawImage:
        """Open the device if needed and return one frame."""

        await self.open()
        return await self.capture_frame()

    async def preview(self, interval: float = 0.1) -> AsyncIterator[RawImage]:
        """Yield frames continuously until the consumer stops iterating."""

        while self.active:
            yield await self.capture_frame()
            await asyncio.sleep(interval)

    async def close(self) -> None:
        """Release the device. Safe to call repeatedly."""

        async with self._lock:
            capture, self._capture = self._capture, None
            if capture is None:
                return
            camera_active.dec()
            await asyncio.to_thread(capture.release)
            logger.info("Camera %s released.", self._device_index)

    async def __aenter__(self) -> "LiveCameraSource":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def release_quietly(close: Callable[[], Awaitable[None]]) -> None:
    """Release a resource on an error path without masking the original error."""

    try:
        await close()
    except Exception:  # pragma: no cover - logged and ignored on cleanup
        logger.exception("Failed to release capture resource")
