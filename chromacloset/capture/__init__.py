"""Capture sources for the scan workflow."""

from .sources import (
    CaptureMode,
    CaptureSource,
    DeviceAccessDenied,
    LiveCameraSource,
    NoFileSelected,
    RawImage,
    UploadSource,
)

__all__ = [
    "CaptureMode",
    "CaptureSource",
    "DeviceAccessDenied",
    "LiveCameraSource",
    "NoFileSelected",
    "RawImage",
    "UploadSource",
]
