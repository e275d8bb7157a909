"""Tests for inventory statistics."""

from __future__ import annotations

from chromacloset.insights import families, filter_by_family, summarize
from chromacloset.models import Category


def test_summary_of_empty_closet() -> None:
    summary = summarize([])

    assert summary.total == 0
    assert summary.unique_colors == 0
    assert summary.color_families == 0
    assert summary.most_common_color == "N/A"
    assert summary.family_counts == {}


def test_summary_counts(make_item) -> None:
    items = [
        make_item(color_name="Navy", color_family="Blue", dominant_color_hex="#000080"),
        make_item(color_name="Ivory", color_family="Neutral", dominant_color_hex="#fffff0"),
        make_item(color_name="Navy", color_family="Blue", dominant_color_hex="#000080", category=Category.BOTTOM),
        make_item(color_name="Sky", color_family="Blue", dominant_color_hex="#87ceeb"),
    ]

    summary = summarize(items)

    assert summary.total == 4
    assert summary.unique_colors == 3
    assert summary.color_families == 2
    assert summary.most_common_color == "Navy"
    assert list(summary.family_counts.items()) == [("Blue", 3), ("Neutral", 1)]
    assert summary.category_counts == {"top": 3, "bottom": 1}


def test_most_common_tie_goes_to_first_seen(make_item) -> None:
    items = [make_item(color_name="Olive"), make_item(color_name="Rust")]

    assert summarize(items).most_common_color == "Olive"


def test_families_and_filter(make_item) -> None:
    red = make_item(color_family="Red")
    blue = make_item(color_family="Blue")
    other_red = make_item(color_family="Red")
    items = [red, blue, other_red]

    assert families(items) == ["Red", "Blue"]
    assert filter_by_family(items, "Red") == [red, other_red]
    assert filter_by_family(items, None) == items
    assert filter_by_family(items, "Green") == []
