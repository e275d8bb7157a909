"""Structured item extraction from photos."""

from .client import (
    ExtractedItem,
    ExtractionClient,
    ExtractionMode,
    ExtractionResult,
    ExtractionUnavailable,
)

__all__ = [
    "ExtractedItem",
    "ExtractionClient",
    "ExtractionMode",
    "ExtractionResult",
    "ExtractionUnavailable",
]
