"""Scan workflow: capture, preprocess, extract, review and commit."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from chromacloset.capture.sources import (
    CaptureSource,
    DeviceAccessDenied,
    LiveCameraSource,
    NoFileSelected,
    release_quietly,
)
from chromacloset.extraction.client import (
    ExtractedItem,
    ExtractionClient,
    ExtractionMode,
    ExtractionUnavailable,
)
from chromacloset.imgproc.palette import ColorExtractor
from chromacloset.imgproc.preprocess import DecodeError, EncodedImage, ImagePreprocessor
from chromacloset.models import ScanResult, WardrobeItem
from chromacloset.monitoring.metrics import items_committed_total, scan_outcomes_total
from chromacloset.storage.inventory import InventoryStore, now_ms

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "No clear clothing items detected. Try a clearer photo!"
DECODE_MESSAGE = "Error loading image. Please try another file."
PALETTE_SIZE = 4


class ScanState(str, Enum):
    """Lifecycle of one scan session."""

    IDLE = "idle"
    CAPTURING = "capturing"
    PREVIEWING = "previewing"
    REVIEWING = "reviewing"
    COMMITTED = "committed"
    DISCARDED = "discarded"


_TRANSITIONS: dict[ScanState, frozenset[ScanState]] = {
    ScanState.IDLE: frozenset({ScanState.CAPTURING}),
    ScanState.CAPTURING: frozenset({ScanState.PREVIEWING, ScanState.IDLE, ScanState.REVIEWING}),
    ScanState.PREVIEWING: frozenset({ScanState.REVIEWING, ScanState.DISCARDED, ScanState.IDLE}),
    ScanState.REVIEWING: frozenset({ScanState.CAPTURING, ScanState.COMMITTED, ScanState.DISCARDED}),
    ScanState.COMMITTED: frozenset({ScanState.CAPTURING}),
    ScanState.DISCARDED: frozenset({ScanState.CAPTURING}),
}


class InvalidTransition(RuntimeError):
    """Raised when an operation is not allowed in the current state."""


class ScanInProgress(InvalidTransition):
    """Raised when a scan starts while another one is still capturing or extracting."""


class EmptyBatch(InvalidTransition):
    """Raised when committing a batch with no items left."""


class SessionClosed(InvalidTransition):
    """Raised when a closed session is used."""


class ConfirmationRequired(RuntimeError):
    """Raised when a destructive action was requested without confirmation."""


class OutcomeKind(str, Enum):
    REVIEWING = "reviewing"
    EMPTY = "empty"
    CANCELLED = "cancelled"
    FAILED = "failed"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class Candidate:
    """An extracted item awaiting the user's decision."""

    id: str
    item: ExtractedItem


@dataclass(slots=True)
class ReviewBatch:
    """Items found by one extraction, held until commit or discard."""

    image: EncodedImage
    mode: ExtractionMode
    candidates: list[Candidate] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.candidates)

    def remove(self, candidate_id: str) -> Candidate:
        for index, candidate in enumerate(self.candidates):
            if candidate.id == candidate_id:
                return self.candidates.pop(index)
        raise KeyError(candidate_id)


@dataclass(slots=True)
class ScanOutcome:
    """What a scan attempt produced, with the message to show the user."""

    kind: OutcomeKind
    message: str = ""
    batch: ReviewBatch | None = None
    warning: str | None = None
    upload_only: bool = False


class ReviewSession:
    """One scan workflow bound to a token.

    The session never runs two extractions at once and ignores results that
    arrive after it was closed.
    """

    def __init__(
        self,
        store: InventoryStore,
        preprocessor: ImagePreprocessor,
        extractor: ExtractionClient,
        *,
        token: str | None = None,
        color_extractor: ColorExtractor | None = None,
        camera_factory: Callable[[], LiveCameraSource] | None = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.token = token or uuid.uuid4().hex
        self._store = store
        self._preprocessor = preprocessor
        self._extractor = extractor
        self._color_extractor = color_extractor
        self._camera_factory = camera_factory
        self._id_factory = id_factory
        self._clock = clock
        self._state = ScanState.IDLE
        self._batch: ReviewBatch | None = None
        self._source: CaptureSource | None = None
        self._camera: LiveCameraSource | None = None
        self._closed = False
        self.upload_only = camera_factory is None

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def batch(self) -> ReviewBatch | None:
        return self._batch

    @property
    def busy(self) -> bool:
        return self._state in (ScanState.CAPTURING, ScanState.PREVIEWING)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def camera_active(self) -> bool:
        return self._camera is not None and self._camera.active

    def _move(self, target: ScanState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransition(f"Cannot go from {self._state.value} to {target.value}.")
        logger.debug("Session %s: %s -> %s", self.token, self._state.value, target.value)
        self._state = target

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(f"Session {self.token} is closed.")

    def _restore(self, prior_state: ScanState, prior_batch: ReviewBatch | None) -> None:
        if prior_state is ScanState.REVIEWING and prior_batch is not None:
            self._move(ScanState.REVIEWING)
            self._batch = prior_batch
        else:
            self._move(ScanState.IDLE)
            self._batch = None

    def camera_source(self) -> LiveCameraSource:
        """Return the session's camera, creating it on first use."""

        self._ensure_open()
        if self._camera_factory is None or self.upload_only:
            raise DeviceAccessDenied("Camera capture is not available. Upload a photo instead.")
        if self._camera is None:
            self._camera = self._camera_factory()
        return self._camera

    async def release_camera(self) -> None:
        """Stop the camera, e.g. when the user switches to uploading."""

        if self._camera is not None:
            await self._camera.close()

    async def _switch_source(self, source: CaptureSource) -> None:
        previous = self._source
        self._source = source
        if previous is not None and previous is not source and previous.active:
            await previous.close()
        if source is not self._camera:
            await self.release_camera()

    def _finish(self, outcome: ScanOutcome) -> ScanOutcome:
        scan_outcomes_total.labels(kind=outcome.kind.value).inc()
        return outcome

    async def scan(
        self,
        source: CaptureSource,
        mode: ExtractionMode = ExtractionMode.GARMENT_DETECTION,
    ) -> ScanOutcome:
        """Run one capture-to-review cycle.

        Capture, decode and extraction failures are reported in the returned
        outcome; the session falls back to idle or to the batch it was
        reviewing before.
        """

        self._ensure_open()
        if self.busy:
            raise ScanInProgress("A scan is already running in this session.")
        prior_state, prior_batch = self._state, self._batch
        self._move(ScanState.CAPTURING)

        try:
            return await self._run_scan(source, mode, prior_state, prior_batch)
        except BaseException:
            if self.busy and not self._closed:
                logger.warning("Session %s: scan aborted in state %s.", self.token, self._state.value)
                await release_quietly(source.close)
                self._restore(prior_state, prior_batch)
            raise

    async def _run_scan(
        self,
        source: CaptureSource,
        mode: ExtractionMode,
        prior_state: ScanState,
        prior_batch: ReviewBatch | None,
    ) -> ScanOutcome:
        try:
            await self._switch_source(source)
            raw = await source.acquire()
        except NoFileSelected:
            self._restore(prior_state, prior_batch)
            return self._finish(ScanOutcome(OutcomeKind.CANCELLED, batch=self._batch))
        except DeviceAccessDenied as exc:
            await release_quietly(source.close)
            self.upload_only = True
            self._restore(prior_state, prior_batch)
            logger.warning("Session %s: camera unavailable, falling back to upload.", self.token)
            return self._finish(
                ScanOutcome(OutcomeKind.FAILED, message=str(exc), batch=self._batch, upload_only=True),
            )
        except asyncio.CancelledError:
            await release_quietly(source.close)
            if not self._closed:
                self._restore(prior_state, prior_batch)
            raise

        if self._closed:
            return self._finish(ScanOutcome(OutcomeKind.STALE))

        try:
            encoded = await self._preprocessor.prepare_async(raw, spatial=mode.spatial)
        except DecodeError:
            logger.warning("Session %s: could not decode %s.", self.token, raw.filename or "capture")
            self._restore(prior_state, prior_batch)
            return self._finish(ScanOutcome(OutcomeKind.FAILED, message=DECODE_MESSAGE, batch=self._batch))

        if self._closed:
            return self._finish(ScanOutcome(OutcomeKind.STALE))
        self._move(ScanState.PREVIEWING)

        try:
            result = await self._extractor.extract(encoded, mode)
        except ExtractionUnavailable as exc:
            if self._closed:
                return self._finish(ScanOutcome(OutcomeKind.STALE))
            self._restore(prior_state, prior_batch)
            return self._finish(ScanOutcome(OutcomeKind.FAILED, message=str(exc), batch=self._batch))

        if self._closed:
            logger.info("Session %s closed before extraction finished; dropping result.", self.token)
            return self._finish(ScanOutcome(OutcomeKind.STALE))

        if not result.items:
            self._move(ScanState.DISCARDED)
            self._batch = None
            return self._finish(ScanOutcome(OutcomeKind.EMPTY, message=EMPTY_MESSAGE, warning=result.warning))

        batch = ReviewBatch(
            image=encoded,
            mode=mode,
            candidates=[Candidate(id=uuid.uuid4().hex, item=item) for item in result.items],
        )
        self._batch = batch
        self._move(ScanState.REVIEWING)
        return self._finish(
            ScanOutcome(
                OutcomeKind.REVIEWING,
                message=f"Found {len(batch)} item(s). Review them before adding to your closet.",
                batch=batch,
                warning=result.warning,
            ),
        )

    def remove_item(self, candidate_id: str) -> Candidate:
        """Drop one candidate from the batch under review."""

        self._ensure_open()
        if self._state is not ScanState.REVIEWING or self._batch is None:
            raise InvalidTransition("There is no batch under review.")
        return self._batch.remove(candidate_id)

    async def commit(self) -> ScanResult:
        """Add every remaining candidate to the inventory as one scan."""

        self._ensure_open()
        batch = self._batch
        if self._state is not ScanState.REVIEWING or batch is None:
            raise InvalidTransition("There is no batch under review.")
        if not batch.candidates:
            raise EmptyBatch("All items were removed; nothing to commit.")

        self._move(ScanState.COMMITTED)
        self._batch = None
        try:
            created_at = self._clock()
            items = await self._build_items(batch, created_at)
            if self._closed:
                logger.info("Session %s closed during commit; nothing was stored.", self.token)
                raise SessionClosed(f"Session {self.token} is closed.")
            scan = await self._store.append(items, created_at)
        except BaseException:
            # A scan started in the meantime owns the state.
            if not self._closed and self._state is ScanState.COMMITTED:
                self._state = ScanState.REVIEWING
                self._batch = batch
            raise

        items_committed_total.inc(len(items))
        return scan

    def discard(self, *, confirm: bool = False) -> None:
        """Throw away the batch under review. Requires explicit confirmation."""

        self._ensure_open()
        if self._state is not ScanState.REVIEWING:
            raise InvalidTransition("There is no batch under review.")
        if not confirm:
            raise ConfirmationRequired("Discarding the reviewed items needs confirmation.")
        self._move(ScanState.DISCARDED)
        self._batch = None

    async def close(self) -> None:
        """Invalidate the session and release any capture device it holds."""

        if self._closed:
            return
        self._closed = True
        self._batch = None
        if self._source is not None and self._source is not self._camera:
            await release_quietly(self._source.close)
        if self._camera is not None:
            await release_quietly(self._camera.close)
        logger.info("Session %s closed in state %s.", self.token, self._state.value)

    async def _build_items(self, batch: ReviewBatch, created_at: int) -> list[WardrobeItem]:
        palettes = await asyncio.to_thread(self._palettes, batch)
        image_ref = batch.image.as_data_url()
        items = []
        for candidate, palette in zip(batch.candidates, palettes):
            extracted = candidate.item
            items.append(
                WardrobeItem(
                    id=self._id_factory(),
                    category=extracted.category,
                    subcategory=extracted.subcategory,
                    brand=extracted.brand,
                    image_ref=image_ref,
                    dominant_color_hex=extracted.dominant_color_hex,
                    color_family=extracted.color_family,
                    color_name=extracted.color_name,
                    pattern_type=extracted.pattern_type,
                    confidence=extracted.confidence,
                    created_at=created_at,
                    box=extracted.bounding_box(),
                    palette_hex=palette,
                    secondary_color_hex=palette[1] if len(palette) > 1 else None,
                ),
            )
        return items

    def _palettes(self, batch: ReviewBatch) -> list[tuple[str, ...]]:
        dominants = [candidate.item.dominant_color_hex for candidate in batch.candidates]
        if self._color_extractor is None:
            return [(hex_value,) for hex_value in dominants]
        with batch.image.open() as image:
            image.load()
            palettes = []
            for candidate, dominant in zip(batch.candidates, dominants):
                local = self._color_extractor.extract_palette(image, candidate.item.bounding_box())
                merged = [dominant, *(value for value in local if value != dominant)]
                palettes.append(tuple(merged[:PALETTE_SIZE]))
        return palettes
