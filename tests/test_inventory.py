"""Tests for the inventory store."""

from __future__ import annotations

import pytest

from chromacloset.models import OutfitRecommendation
from chromacloset.storage.backends import InMemorySlots
from chromacloset.storage.inventory import (
    SLOT_ITEMS,
    SLOT_SCANS,
    DuplicateItemError,
    InventoryStore,
    PersistenceWarning,
)


class FailingSlots(InMemorySlots):
    async def save(self, slots) -> None:
        raise OSError("disk full")

    async def clear(self) -> None:
        raise OSError("read-only filesystem")


def _outfit(outfit_id: str = "look-1") -> OutfitRecommendation:
    return OutfitRecommendation(
        id=outfit_id,
        title="Tonal blues",
        description="Navy on navy.",
        stylist_tip="Monochrome elongates the silhouette.",
        item_ids=["item-1"],
        occasion="Office",
        style_vibe="Minimalist",
    )


@pytest.mark.asyncio
async def test_append_records_scan_with_exact_ids(make_item) -> None:
    backend = InMemorySlots()
    store = InventoryStore(backend)
    items = [make_item(), make_item(), make_item()]

    scan = await store.append(items, scan_timestamp=1000)

    assert scan.timestamp == 1000
    assert list(scan.item_ids) == [item.id for item in items]
    assert store.items == tuple(items)
    assert store.total_scanned == 3
    assert SLOT_ITEMS in backend.slots and SLOT_SCANS in backend.slots


@pytest.mark.asyncio
async def test_append_rejects_empty_batch() -> None:
    store = InventoryStore(InMemorySlots())

    with pytest.raises(ValueError):
        await store.append([])


@pytest.mark.asyncio
async def test_duplicate_ids_leave_state_untouched(make_item) -> None:
    store = InventoryStore(InMemorySlots())
    first = make_item()
    await store.append([first], scan_timestamp=1)

    with pytest.raises(DuplicateItemError):
        await store.append([make_item(), make_item(id=first.id)], scan_timestamp=2)

    assert store.items == (first,)
    assert len(store.scans) == 1
    assert store.total_scanned == 1


@pytest.mark.asyncio
async def test_colliding_timestamps_are_made_unique(make_item) -> None:
    store = InventoryStore(InMemorySlots())

    first = await store.append([make_item()], scan_timestamp=500)
    second = await store.append([make_item()], scan_timestamp=500)

    assert first.timestamp != second.timestamp
    assert [scan.timestamp for scan in store.scans] == [second.timestamp, first.timestamp]


@pytest.mark.asyncio
async def test_delete_scan_group_removes_only_that_group(make_item) -> None:
    store = InventoryStore(InMemorySlots())
    keep = [make_item(), make_item()]
    drop = [make_item(), make_item(), make_item()]
    await store.append(keep, scan_timestamp=1)
    await store.append(drop, scan_timestamp=2)

    removed = await store.delete_scan_group(2)

    assert removed == 3
    assert store.items == tuple(keep)
    assert [scan.timestamp for scan in store.scans] == [1]
    assert store.total_scanned == 5
    assert await store.delete_scan_group(99) == 0


@pytest.mark.asyncio
async def test_history_is_bounded_but_items_stay(make_item) -> None:
    store = InventoryStore(InMemorySlots(), history_limit=2)

    for timestamp in (1, 2, 3):
        await store.append([make_item()], scan_timestamp=timestamp)

    assert [scan.timestamp for scan in store.scans] == [3, 2]
    assert len(store.items) == 3
    assert store.total_scanned == 3


@pytest.mark.asyncio
async def test_reset_is_idempotent(make_item) -> None:
    backend = InMemorySlots()
    store = InventoryStore(backend)
    await store.append([make_item()], scan_timestamp=1)
    await store.set_brand_icon("data:image/png;base64,AAAA")
    await store.toggle_saved_outfit(_outfit())

    assert await store.reset() is None
    assert await store.reset() is None

    assert store.items == ()
    assert store.scans == ()
    assert store.total_scanned == 0
    assert store.brand_icon is None
    assert store.saved_outfits == ()
    assert backend.slots == {}


@pytest.mark.asyncio
async def test_state_survives_reload(make_item) -> None:
    backend = InMemorySlots()
    store = InventoryStore(backend)
    items = [make_item(), make_item()]
    await store.append(items, scan_timestamp=42)

    reloaded = await InventoryStore.open(backend)

    assert reloaded.items == tuple(items)
    assert [scan.timestamp for scan in reloaded.scans] == [42]
    assert reloaded.total_scanned == 2


@pytest.mark.asyncio
async def test_corrupt_slots_load_as_empty() -> None:
    backend = InMemorySlots({SLOT_ITEMS: "{not json", SLOT_SCANS: "[]", "total_scanned": "many"})

    store = await InventoryStore.open(backend)

    assert store.items == ()
    assert store.total_scanned == 0


@pytest.mark.asyncio
async def test_persistence_failure_keeps_memory_state(make_item) -> None:
    store = InventoryStore(FailingSlots())
    item = make_item()

    scan = await store.append([item], scan_timestamp=7)

    assert scan.item_ids == (item.id,)
    assert store.items == (item,)
    assert isinstance(store.last_warning, PersistenceWarning)

    warning = await store.reset()
    assert isinstance(warning, PersistenceWarning)
    assert store.items == ()


@pytest.mark.asyncio
async def test_lookbook_toggle_worn_and_notes() -> None:
    clock_values = iter([100, 200])
    store = InventoryStore(InMemorySlots(), clock=lambda: next(clock_values))

    assert await store.toggle_saved_outfit(_outfit()) is True
    saved = store.saved_outfits[0]
    assert saved.is_saved and saved.date_saved == 100

    worn = await store.mark_outfit_worn("look-1")
    noted = await store.update_outfit_notes("look-1", "Swap for loafers")

    assert worn.last_worn == 200
    assert noted.user_notes == "Swap for loafers"
    with pytest.raises(KeyError):
        await store.mark_outfit_worn("missing")

    assert await store.toggle_saved_outfit(_outfit()) is False
    assert store.saved_outfits == ()
