"""Prompt construction for the style assistant."""

from __future__ import annotations

import json
from typing import Any, Sequence

from chromacloset.models import StylePersona, WardrobeGap, WardrobeItem

OUTFIT_COUNT = 3
GAP_COUNT = 3


def item_manifest(items: Sequence[WardrobeItem]) -> list[dict[str, str]]:
    """Compact description of the inventory passed to the model."""

    return [
        {
            "id": item.id,
            "desc": f"{item.color_name} {item.subcategory} ({item.category.value})",
            "family": item.color_family,
        }
        for item in items
    ]


def outfit_messages(
    items: Sequence[WardrobeItem],
    occasion: str,
    persona: StylePersona,
    weather: str | None = None,
) -> list[dict[str, Any]]:
    weather_context = f"The current weather is {weather}. " if weather else ""
    return [
        {
            "role": "system",
            "content": (
                "You are a high-end fashion concierge. "
                f'The user\'s style persona is "{persona.value}". '
                "Use ONLY the wardrobe items you are given and refer to them by their exact id. "
                'Answer strictly in JSON: {"outfits": [{"id": "...", "title": "...", '
                '"description": "...", "stylistTip": "...", "itemIds": ["..."], '
                '"occasion": "...", "styleVibe": "..."}]}. '
                'Every "stylistTip" must reference color theory or styling principles.'
            ),
        },
        {
            "role": "user",
            "content": (
                f"Wardrobe items: {json.dumps(item_manifest(items), ensure_ascii=False)}. "
                f'Curate {OUTFIT_COUNT} outfits for "{occasion}". {weather_context}'
            ).strip(),
        },
    ]


def gap_messages(items: Sequence[WardrobeItem]) -> list[dict[str, Any]]:
    closet = [
        {
            "category": item.category.value,
            "type": item.subcategory,
            "color": item.color_name,
            "family": item.color_family,
        }
        for item in items
    ]
    return [
        {
            "role": "system",
            "content": (
                "You are a wardrobe analyst. "
                'Answer strictly in JSON: {"gaps": [{"itemType": "...", "suggestedColor": "...", '
                '"reasoning": "...", "priority": "high|medium|low"}]}.'
            ),
        },
        {
            "role": "user",
            "content": (
                f"Closet data: {json.dumps(closet, ensure_ascii=False)}. "
                f"Identify {GAP_COUNT} missing versatile basics that would enhance this specific collection."
            ),
        },
    ]


def gap_search_messages(gap: WardrobeGap) -> list[dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": (
                f"Find shopping recommendations for a {gap.suggested_color} {gap.item_type}. "
                "Focus on brands like Everlane, Uniqlo, or high-quality basics. "
                "Include links to product pages where you can."
            ),
        },
    ]


def chat_system_instruction(items: Sequence[WardrobeItem], persona: StylePersona) -> str:
    manifest = ", ".join(item.label for item in items) or "no items yet"
    return (
        f"You are the Chromacloset Style Concierge. The user has these items: {manifest}. "
        f"Their style persona is {persona.value}. Help them with specific styling questions, "
        "outfit advice, and mixing colors. Be encouraging, sophisticated, and concise. "
        "Always suggest specific items from their inventory when possible."
    )
