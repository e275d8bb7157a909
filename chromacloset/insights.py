"""Inventory statistics for the overview and colour explorer views."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from chromacloset.models import WardrobeItem


@dataclass(slots=True)
class InventorySummary:
    total: int
    unique_colors: int
    color_families: int
    most_common_color: str
    family_counts: dict[str, int]
    category_counts: dict[str, int]


def summarize(items: Sequence[WardrobeItem]) -> InventorySummary:
    """Aggregate counts over the inventory.

    Count mappings keep first-seen order. Ties for the most common colour name
    go to the name seen first.
    """

    family_counts: Counter[str] = Counter(item.color_family for item in items)
    category_counts: Counter[str] = Counter(item.category.value for item in items)
    color_names: Counter[str] = Counter(item.color_name for item in items)

    most_common = "N/A"
    if color_names:
        top = max(color_names.values())
        most_common = next(name for name, count in color_names.items() if count == top)

    return InventorySummary(
        total=len(items),
        unique_colors=len({item.dominant_color_hex for item in items}),
        color_families=len(family_counts),
        most_common_color=most_common,
        family_counts=dict(family_counts),
        category_counts=dict(category_counts),
    )


def families(items: Sequence[WardrobeItem]) -> list[str]:
    """Colour families present in the inventory, in first-seen order."""

    return list(dict.fromkeys(item.color_family for item in items))


def filter_by_family(items: Sequence[WardrobeItem], family: str | None) -> list[WardrobeItem]:
    if not family:
        return list(items)
    return [item for item in items if item.color_family == family]
