"""Persisted wardrobe inventory, scan history and lookbook."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Iterable

from chromacloset.models import OutfitRecommendation, ScanResult, WardrobeItem
from chromacloset.monitoring.metrics import persistence_failures_total
from chromacloset.storage.backends import SlotBackend

logger = logging.getLogger(__name__)

SLOT_ITEMS = "items"
SLOT_SCANS = "scans"
SLOT_TOTAL_SCANNED = "total_scanned"
SLOT_BRAND_ICON = "brand_icon"
SLOT_SAVED_OUTFITS = "saved_outfits"

DEFAULT_HISTORY_LIMIT = 20


def now_ms() -> int:
    return int(time.time() * 1000)


class DuplicateItemError(ValueError):
    """Raised when an appended item id is already present in the inventory."""


class PersistenceWarning(UserWarning):
    """State changed in memory but could not be written to the backend."""


class InventoryStore:
    """Owns every persisted item, scan record and saved outfit.

    All mutation goes through the async methods below. The in-memory state is
    authoritative for the running process; writes to the backend are
    best-effort and failures surface as :class:`PersistenceWarning`.
    """

    def __init__(
        self,
        backend: SlotBackend,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._backend = backend
        self._history_limit = history_limit
        self._clock = clock
        self._lock = asyncio.Lock()
        self._items: list[WardrobeItem] = []
        self._scans: list[ScanResult] = []
        self._total_scanned = 0
        self._brand_icon: str | None = None
        self._saved_outfits: list[OutfitRecommendation] = []
        self.last_warning: PersistenceWarning | None = None

    @classmethod
    async def open(cls, backend: SlotBackend, **kwargs: Any) -> "InventoryStore":
        """Create a store and load whatever the backend already holds."""

        store = cls(backend, **kwargs)
        await store.load()
        return store

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def items(self) -> tuple[WardrobeItem, ...]:
        return tuple(self._items)

    @property
    def scans(self) -> tuple[ScanResult, ...]:
        """Scan history, newest first."""

        return tuple(self._scans)

    @property
    def total_scanned(self) -> int:
        return self._total_scanned

    @property
    def brand_icon(self) -> str | None:
        return self._brand_icon

    @property
    def saved_outfits(self) -> tuple[OutfitRecommendation, ...]:
        return tuple(self._saved_outfits)

    def get_item(self, item_id: str) -> WardrobeItem | None:
        return next((item for item in self._items if item.id == item_id), None)

    def get_scan(self, timestamp: int) -> ScanResult | None:
        return next((scan for scan in self._scans if scan.timestamp == timestamp), None)

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------
    async def load(self) -> None:
        """Replace in-memory state with the backend contents.

        Unreadable slots are logged and treated as empty.
        """

        try:
            slots = await self._backend.load()
        except Exception:
            logger.exception("Could not read persisted closet; starting empty.")
            slots = {}

        async with self._lock:
            self._items = _decode_list(slots, SLOT_ITEMS, WardrobeItem.from_dict)
            self._scans = _decode_list(slots, SLOT_SCANS, ScanResult.from_dict)[: self._history_limit]
            self._saved_outfits = _decode_list(slots, SLOT_SAVED_OUTFITS, OutfitRecommendation.from_dict)
            try:
                self._total_scanned = int(slots.get(SLOT_TOTAL_SCANNED, "0"))
            except ValueError:
                logger.warning("Ignoring corrupt %s slot.", SLOT_TOTAL_SCANNED)
                self._total_scanned = 0
            self._brand_icon = slots.get(SLOT_BRAND_ICON) or None
        logger.info("Loaded %d items and %d scans.", len(self._items), len(self._scans))

    def _snapshot(self) -> dict[str, str]:
        slots = {
            SLOT_ITEMS: json.dumps([item.to_dict() for item in self._items], ensure_ascii=False),
            SLOT_SCANS: json.dumps([scan.to_dict() for scan in self._scans]),
            SLOT_TOTAL_SCANNED: str(self._total_scanned),
            SLOT_SAVED_OUTFITS: json.dumps(
                [outfit.to_dict() for outfit in self._saved_outfits],
                ensure_ascii=False,
            ),
        }
        if self._brand_icon:
            slots[SLOT_BRAND_ICON] = self._brand_icon
        return slots

    async def _persist(self) -> PersistenceWarning | None:
        try:
            await self._backend.save(self._snapshot())
        except Exception as exc:
            persistence_failures_total.inc()
            logger.warning("Closet state could not be saved: %s", exc, exc_info=True)
            self.last_warning = PersistenceWarning(
                "Your changes are kept for this session but could not be saved to storage.",
            )
            return self.last_warning
        self.last_warning = None
        return None

    async def flush(self) -> PersistenceWarning | None:
        """Write the current state to the backend."""

        async with self._lock:
            return await self._persist()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def append(self, items: Iterable[WardrobeItem], scan_timestamp: int | None = None) -> ScanResult:
        """Add ``items`` and one scan record that lists exactly their ids.

        Nothing changes if any id collides with an existing item or with
        another item of the same batch.
        """

        batch = list(items)
        if not batch:
            raise ValueError("A scan must contain at least one item.")

        async with self._lock:
            known = {item.id for item in self._items}
            batch_ids: list[str] = []
            for item in batch:
                if item.id in known or item.id in batch_ids:
                    raise DuplicateItemError(f"Item id {item.id!r} already exists.")
                batch_ids.append(item.id)

            timestamp = scan_timestamp if scan_timestamp is not None else self._clock()
            taken = {scan.timestamp for scan in self._scans}
            while timestamp in taken:
                timestamp += 1

            scan = ScanResult(timestamp=timestamp, item_ids=tuple(batch_ids))
            self._items = [*self._items, *batch]
            self._scans = [scan, *self._scans][: self._history_limit]
            self._total_scanned += len(batch)
            await self._persist()

        logger.info("Committed scan %s with %d items.", scan.timestamp, len(batch))
        return scan

    async def delete_scan_group(self, timestamp: int) -> int:
        """Remove the scan recorded at ``timestamp`` and the items it added.

        Returns the number of removed items; unknown timestamps remove nothing.
        """

        async with self._lock:
            scan = self.get_scan(timestamp)
            if scan is None:
                return 0
            doomed = set(scan.item_ids)
            before = len(self._items)
            self._items = [item for item in self._items if item.id not in doomed]
            self._scans = [entry for entry in self._scans if entry.timestamp != timestamp]
            removed = before - len(self._items)
            await self._persist()

        logger.info("Deleted scan %s and %d items.", timestamp, removed)
        return removed

    async def reset(self) -> PersistenceWarning | None:
        """Forget every item, scan, counter, brand icon and saved outfit."""

        async with self._lock:
            self._items = []
            self._scans = []
            self._total_scanned = 0
            self._brand_icon = None
            self._saved_outfits = []
            try:
                await self._backend.clear()
            except Exception as exc:
                persistence_failures_total.inc()
                logger.warning("Closet storage could not be cleared: %s", exc, exc_info=True)
                self.last_warning = PersistenceWarning(
                    "The closet was cleared for this session but storage could not be wiped.",
                )
                return self.last_warning
            self.last_warning = None
        logger.info("Closet reset.")
        return None

    async def set_brand_icon(self, image_ref: str | None) -> PersistenceWarning | None:
        async with self._lock:
            self._brand_icon = image_ref or None
            return await self._persist()

    async def toggle_saved_outfit(self, outfit: OutfitRecommendation) -> bool:
        """Save ``outfit`` to the lookbook, or remove it if already saved.

        Returns ``True`` when the outfit is saved after the call.
        """

        async with self._lock:
            if any(saved.id == outfit.id for saved in self._saved_outfits):
                self._saved_outfits = [saved for saved in self._saved_outfits if saved.id != outfit.id]
                saved_now = False
            else:
                self._saved_outfits = [outfit.saved_copy(self._clock()), *self._saved_outfits]
                saved_now = True
            await self._persist()
        return saved_now

    async def mark_outfit_worn(self, outfit_id: str) -> OutfitRecommendation:
        return await self._update_outfit(outfit_id, last_worn=self._clock())

    async def update_outfit_notes(self, outfit_id: str, notes: str) -> OutfitRecommendation:
        return await self._update_outfit(outfit_id, user_notes=notes)

    async def _update_outfit(self, outfit_id: str, **changes: Any) -> OutfitRecommendation:
        async with self._lock:
            for outfit in self._saved_outfits:
                if outfit.id == outfit_id:
                    for key, value in changes.items():
                        setattr(outfit, key, value)
                    await self._persist()
                    return outfit
        raise KeyError(outfit_id)


def _decode_list(slots: dict[str, str], key: str, factory: Callable[[dict[str, Any]], Any]) -> list[Any]:
    raw = slots.get(key)
    if not raw:
        return []
    try:
        payload = json.loads(raw)
        return [factory(entry) for entry in payload]
    except (ValueError, TypeError, KeyError):
        logger.warning("Ignoring corrupt %s slot.", key, exc_info=True)
        return []
