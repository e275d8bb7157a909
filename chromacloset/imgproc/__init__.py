"""Image preparation and colour analysis."""

from .palette import ColorExtractor
from .preprocess import DecodeError, EncodedImage, ImagePreprocessor

__all__ = ["ColorExtractor", "DecodeError", "EncodedImage", "ImagePreprocessor"]
