"""Closet brand icon generation."""

from __future__ import annotations

import base64
import logging
from collections import Counter
from typing import Sequence

from chromacloset.api.ai_client import AIServiceClient, AIServiceError
from chromacloset.models import WardrobeItem
from chromacloset.storage.inventory import InventoryStore

logger = logging.getLogger(__name__)

ICON_SIZE = "1024x1024"
TOP_FAMILIES = 3


class BrandingUnavailable(RuntimeError):
    """Raised when the icon could not be generated."""


def icon_prompt(items: Sequence[WardrobeItem]) -> str:
    """Describe the closet's dominant colour families as an icon brief."""

    families = [name for name, _ in Counter(item.color_family for item in items).most_common(TOP_FAMILIES)]
    palette = ", ".join(families) if families else "soft neutrals"
    return (
        "A minimalist, elegant app icon for a personal wardrobe called Chromacloset. "
        f"Abstract clothing hanger motif rendered in {palette}. "
        "Flat vector style, centred on a clean light background, no text."
    )


class BrandIconService:
    """Generates the closet icon and keeps it on the inventory store."""

    def __init__(self, client: AIServiceClient, store: InventoryStore) -> None:
        self._client = client
        self._store = store

    async def generate(self, items: Sequence[WardrobeItem]) -> str:
        """Generate a new icon and return its image reference."""

        prompt = icon_prompt(items)
        try:
            image_bytes, image_url = await self._client.generate_image(prompt, size=ICON_SIZE)
        except AIServiceError as exc:
            logger.error("Brand icon generation failed: %s", exc)
            raise BrandingUnavailable("The icon could not be generated right now. Try again later.") from exc

        if image_bytes:
            image_ref = "data:image/png;base64," + base64.b64encode(image_bytes).decode("ascii")
        elif image_url:
            logger.warning("Image response did not include binary data; keeping the URL.")
            image_ref = image_url
        else:
            raise BrandingUnavailable("The image service returned no picture.")

        await self._store.set_brand_icon(image_ref)
        return image_ref

    async def clear(self) -> None:
        await self._store.set_brand_icon(None)
