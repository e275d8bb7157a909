"""Dominant colour extraction utilities."""

from __future__ import annotations

from collections import Counter

from PIL import Image

from chromacloset.models import BoundingBox

_SAMPLE_SIDE = 64


def to_hex(rgb: tuple[int, int, int]) -> str:
    r, g, b = rgb
    return f"#{r:02x}{g:02x}{b:02x}"


class ColorExtractor:
    """Quantised histogram colour detector for the region of a detected item."""

    def extract_palette(
        self,
        image: Image.Image,
        box: BoundingBox | None = None,
        top_n: int = 3,
    ) -> list[str]:
        """Return hex codes for the most common colours, most frequent first."""

        region = image.convert("RGB")
        if box is not None:
            region = region.crop(box.to_pixels(region.width, region.height))
        region.thumbnail((_SAMPLE_SIDE, _SAMPLE_SIDE))

        quantised = region.quantize(colors=max(top_n * 2, 4)).convert("RGB")
        counter = Counter({rgb: count for count, rgb in quantised.getcolors(maxcolors=256) or []})
        return [to_hex(rgb) for rgb, _ in counter.most_common(top_n)]
