"""Downscaling and JPEG compression of captured photos before upload."""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from chromacloset.capture.sources import RawImage

GENERAL_MAX_SIDE = 1024
SPATIAL_MAX_SIDE = 1200
GENERAL_QUALITY = 80
SPATIAL_QUALITY = 85


class DecodeError(ValueError):
    """Raised when the captured payload is not a readable image."""


@dataclass(frozen=True, slots=True)
class EncodedImage:
    """Compressed image ready to be sent over the network."""

    data: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.as_base64()}"

    def open(self) -> Image.Image:
        """Decode the payload back into a Pillow image."""

        return Image.open(BytesIO(self.data))


def target_size(width: int, height: int, max_side: int) -> tuple[int, int]:
    """Return the size that fits ``max_side`` while keeping the aspect ratio.

    Images already within the cap keep their dimensions; larger ones are
    scaled so that the longer side equals the cap exactly.
    """

    longest = max(width, height)
    if longest <= max_side:
        return width, height
    scale = max_side / longest
    if width >= height:
        return max_side, max(1, round(height * scale))
    return max(1, round(width * scale)), max_side


class ImagePreprocessor:
    """Shrinks photos to a bounded resolution and re-encodes them as JPEG."""

    def prepare(self, raw: RawImage, *, spatial: bool = False) -> EncodedImage:
        """Return a compressed copy of ``raw``.

        Spatial detection keeps more pixels (1200 px cap) so that bounding
        boxes come back finer; general capture is capped at 1024 px.
        """

        max_side = SPATIAL_MAX_SIDE if spatial else GENERAL_MAX_SIDE
        quality = SPATIAL_QUALITY if spatial else GENERAL_QUALITY
        try:
            with Image.open(BytesIO(raw.data)) as source:
                source.load()
                img = ImageOps.exif_transpose(source)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise DecodeError(f"Could not decode image {raw.filename or '<upload>'}.") from exc

        img = _flatten(img)
        size = target_size(img.width, img.height, max_side)
        if size != img.size:
            img = img.resize(size, Image.Resampling.LANCZOS)

        buffer = BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        return EncodedImage(data=buffer.getvalue(), width=img.width, height=img.height)

    async def prepare_async(self, raw: RawImage, *, spatial: bool = False) -> EncodedImage:
        """Run :meth:`prepare` in a worker thread."""

        return await asyncio.to_thread(self.prepare, raw, spatial=spatial)


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img
