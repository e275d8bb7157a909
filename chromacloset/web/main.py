"""FastAPI entrypoint and HTTP routes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from chromacloset.api.ai_client import AIServiceClient
from chromacloset.branding import BrandIconService, BrandingUnavailable
from chromacloset.capture.sources import DeviceAccessDenied, LiveCameraSource, UploadSource
from chromacloset.config.settings import Settings, get_settings
from chromacloset.extraction.client import ExtractionClient, ExtractionMode
from chromacloset.imgproc.palette import ColorExtractor
from chromacloset.imgproc.preprocess import ImagePreprocessor
from chromacloset.insights import families, filter_by_family, summarize
from chromacloset.models import OutfitRecommendation, StylePersona, WardrobeGap
from chromacloset.monitoring.logging import configure_logging
from chromacloset.scan.registry import SessionRegistry, UnknownSession
from chromacloset.scan.session import (
    ConfirmationRequired,
    InvalidTransition,
    ReviewSession,
    ScanOutcome,
)
from chromacloset.storage.backends import SlotBackend
from chromacloset.storage.factory import build_backend, dispose_backend
from chromacloset.storage.inventory import InventoryStore
from chromacloset.stylist.service import StylingChat, StylistService, StylistUnavailable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppContext:
    """Long-lived collaborators shared by every request."""

    settings: Settings
    backend: SlotBackend
    store: InventoryStore
    client: AIServiceClient
    registry: SessionRegistry
    stylist: StylistService
    branding: BrandIconService
    chat: StylingChat | None = None

    async def aclose(self) -> None:
        await self.registry.close_all()
        await self.client.close()
        await dispose_backend(self.backend)


async def build_context(
    settings: Settings,
    *,
    camera_factory: Callable[[], LiveCameraSource] | None = None,
) -> AppContext:
    """Wire the store, AI client and scan registry from ``settings``."""

    backend = build_backend(settings)
    store = await InventoryStore.open(backend, history_limit=settings.scan_history_limit)
    client = AIServiceClient(settings)
    preprocessor = ImagePreprocessor()
    extractor = ExtractionClient(client)
    color_extractor = ColorExtractor()

    def default_camera() -> LiveCameraSource:
        return LiveCameraSource(settings.camera_index)

    make_camera = camera_factory or default_camera

    def session_factory(token: str) -> ReviewSession:
        return ReviewSession(
            store,
            preprocessor,
            extractor,
            token=token,
            color_extractor=color_extractor,
            camera_factory=make_camera,
        )

    return AppContext(
        settings=settings,
        backend=backend,
        store=store,
        client=client,
        registry=SessionRegistry(session_factory),
        stylist=StylistService(client),
        branding=BrandIconService(client, store),
    )


class OutfitRequest(BaseModel):
    occasion: str = "Casual"
    persona: StylePersona = StylePersona.MINIMALIST
    weather: str | None = None


class GapRequest(BaseModel):
    item_type: str
    suggested_color: str
    reasoning: str = ""
    priority: str = "medium"


class ChatRequest(BaseModel):
    message: str
    persona: StylePersona = StylePersona.MINIMALIST
    reset: bool = False


class OutfitBody(BaseModel):
    id: str
    title: str
    description: str = ""
    stylist_tip: str = ""
    item_ids: list[str] = Field(default_factory=list)
    occasion: str = ""
    style_vibe: str = ""


class NotesBody(BaseModel):
    notes: str


def get_context(request: Request) -> AppContext:
    context = request.app.state.context
    if context is None:
        raise HTTPException(status_code=503, detail="Service is starting up.")
    return context


def _session_view(session: ReviewSession) -> dict[str, Any]:
    batch = session.batch
    candidates = []
    if batch is not None:
        candidates = [
            {"id": candidate.id, **candidate.item.model_dump(mode="json")}
            for candidate in batch.candidates
        ]
    return {
        "token": session.token,
        "state": session.state.value,
        "upload_only": session.upload_only,
        "camera_active": session.camera_active,
        "mode": batch.mode.value if batch is not None else None,
        "candidates": candidates,
    }


def _outcome_view(outcome: ScanOutcome, session: ReviewSession) -> dict[str, Any]:
    return {
        "outcome": outcome.kind.value,
        "message": outcome.message,
        "warning": outcome.warning,
        "upload_only": outcome.upload_only or session.upload_only,
        "session": _session_view(session),
    }


def _warning(context: AppContext) -> str | None:
    warning = context.store.last_warning
    return str(warning) if warning is not None else None


def _register_error_handlers(app: FastAPI) -> None:
    def _handler(status_code: int, detail: str | None = None):
        async def handle(request: Request, exc: Exception) -> JSONResponse:
            return JSONResponse(status_code=status_code, content={"detail": detail or str(exc)})

        return handle

    app.add_exception_handler(UnknownSession, _handler(404, "Unknown or expired scan session."))
    app.add_exception_handler(InvalidTransition, _handler(409))
    app.add_exception_handler(DeviceAccessDenied, _handler(409))
    app.add_exception_handler(ConfirmationRequired, _handler(400))
    app.add_exception_handler(StylistUnavailable, _handler(503))
    app.add_exception_handler(BrandingUnavailable, _handler(503))


def create_app(context: AppContext | None = None) -> FastAPI:
    """Initialise the FastAPI application.

    When ``context`` is omitted it is built from settings at startup and
    closed on shutdown.
    """

    settings = context.settings if context is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.context is not None:
            yield
            return
        configure_logging()
        owned = await build_context(settings)
        app.state.context = owned
        logger.info("Closet loaded with %d items.", len(owned.store.items))
        try:
            yield
        finally:
            await owned.aclose()
            app.state.context = None

    app = FastAPI(
        title="Chromacloset API",
        version="0.1.0",
        docs_url="/docs" if settings.environment != "prod" else None,
        redoc_url="/redoc" if settings.environment != "prod" else None,
        lifespan=lifespan,
    )
    app.state.context = context
    app.mount("/metrics", make_asgi_app())
    _register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Simple health endpoint used for readiness probes."""

        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    @app.get("/inventory", tags=["inventory"])
    async def inventory(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        items = ctx.store.items
        return {
            "items": [item.to_dict() for item in items],
            "scans": [scan.to_dict() for scan in ctx.store.scans],
            "total_scanned": ctx.store.total_scanned,
            "brand_icon": ctx.store.brand_icon,
            "stats": asdict(summarize(items)),
        }

    @app.delete("/inventory", tags=["inventory"])
    async def reset_inventory(confirm: bool = False, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        if not confirm:
            raise ConfirmationRequired("Resetting the closet needs confirmation.")
        await ctx.registry.close_all()
        ctx.chat = None
        warning = await ctx.store.reset()
        return {"status": "reset", "warning": str(warning) if warning else None}

    @app.delete("/scans/{timestamp}", tags=["inventory"])
    async def delete_scan(
        timestamp: int,
        confirm: bool = False,
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        if ctx.store.get_scan(timestamp) is None:
            raise HTTPException(status_code=404, detail="Scan not found.")
        if not confirm:
            raise ConfirmationRequired("Deleting a scan and its items needs confirmation.")
        removed = await ctx.store.delete_scan_group(timestamp)
        return {"removed": removed, "warning": _warning(ctx)}

    # ------------------------------------------------------------------
    # Scan workflow
    # ------------------------------------------------------------------
    @app.post("/scan/sessions", tags=["scan"], status_code=201)
    async def open_session(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        session = await ctx.registry.create()
        return _session_view(session)

    @app.get("/scan/sessions/{token}", tags=["scan"])
    async def session_state(token: str, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        return _session_view(ctx.registry.get(token))

    @app.post("/scan/sessions/{token}/upload", tags=["scan"])
    async def scan_upload(
        token: str,
        file: UploadFile | None = File(None),
        mode: ExtractionMode = Form(ExtractionMode.GARMENT_DETECTION),
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        session = ctx.registry.get(token)
        outcome = await session.scan(UploadSource(file), mode)
        return _outcome_view(outcome, session)

    @app.post("/scan/sessions/{token}/camera", tags=["scan"])
    async def scan_camera(
        token: str,
        mode: ExtractionMode = ExtractionMode.GARMENT_DETECTION,
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        session = ctx.registry.get(token)
        outcome = await session.scan(session.camera_source(), mode)
        return _outcome_view(outcome, session)

    @app.delete("/scan/sessions/{token}/items/{candidate_id}", tags=["scan"])
    async def remove_candidate(
        token: str,
        candidate_id: str,
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        session = ctx.registry.get(token)
        try:
            session.remove_item(candidate_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Item not found in this batch.") from None
        return _session_view(session)

    @app.post("/scan/sessions/{token}/commit", tags=["scan"])
    async def commit_batch(token: str, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        session = ctx.registry.get(token)
        scan = await session.commit()
        return {"scan": scan.to_dict(), "warning": _warning(ctx), "session": _session_view(session)}

    @app.post("/scan/sessions/{token}/discard", tags=["scan"])
    async def discard_batch(
        token: str,
        confirm: bool = False,
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        session = ctx.registry.get(token)
        session.discard(confirm=confirm)
        return _session_view(session)

    @app.delete("/scan/sessions/{token}", tags=["scan"])
    async def close_session(token: str, ctx: AppContext = Depends(get_context)) -> dict[str, str]:
        await ctx.registry.close(token)
        return {"status": "closed"}

    # ------------------------------------------------------------------
    # Colour explorer
    # ------------------------------------------------------------------
    @app.get("/explorer", tags=["explorer"])
    async def explorer(family: str | None = None, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        items = ctx.store.items
        return {
            "families": families(items),
            "items": [item.to_dict() for item in filter_by_family(items, family)],
        }

    # ------------------------------------------------------------------
    # Style assistant
    # ------------------------------------------------------------------
    @app.post("/stylist/outfits", tags=["stylist"])
    async def outfits(body: OutfitRequest, ctx: AppContext = Depends(get_context)) -> list[dict[str, Any]]:
        looks = await ctx.stylist.generate_outfits(ctx.store.items, body.occasion, body.persona, body.weather)
        return [look.to_dict() for look in looks]

    @app.post("/stylist/gaps", tags=["stylist"])
    async def gaps(ctx: AppContext = Depends(get_context)) -> list[dict[str, Any]]:
        return [asdict(gap) for gap in await ctx.stylist.analyze_gaps(ctx.store.items)]

    @app.post("/stylist/gaps/search", tags=["stylist"])
    async def gap_search(body: GapRequest, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        result = await ctx.stylist.search_gap_items(WardrobeGap(**body.model_dump()))
        return asdict(result)

    @app.post("/stylist/chat", tags=["stylist"])
    async def chat(body: ChatRequest, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        if body.reset or ctx.chat is None or ctx.chat.persona is not body.persona:
            ctx.chat = ctx.stylist.start_chat(ctx.store.items, body.persona)
        reply = await ctx.chat.send(body.message)
        return {
            "reply": reply.text if reply is not None else None,
            "history": [asdict(message) for message in ctx.chat.history],
        }

    @app.get("/stylist/lookbook", tags=["stylist"])
    async def lookbook(ctx: AppContext = Depends(get_context)) -> list[dict[str, Any]]:
        return [outfit.to_dict() for outfit in ctx.store.saved_outfits]

    @app.post("/stylist/lookbook", tags=["stylist"])
    async def toggle_lookbook(body: OutfitBody, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        saved = await ctx.store.toggle_saved_outfit(OutfitRecommendation(**body.model_dump()))
        return {"saved": saved, "warning": _warning(ctx)}

    @app.post("/stylist/lookbook/{outfit_id}/worn", tags=["stylist"])
    async def mark_worn(outfit_id: str, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        try:
            outfit = await ctx.store.mark_outfit_worn(outfit_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Outfit is not in the lookbook.") from None
        return outfit.to_dict()

    @app.put("/stylist/lookbook/{outfit_id}/notes", tags=["stylist"])
    async def update_notes(
        outfit_id: str,
        body: NotesBody,
        ctx: AppContext = Depends(get_context),
    ) -> dict[str, Any]:
        try:
            outfit = await ctx.store.update_outfit_notes(outfit_id, body.notes)
        except KeyError:
            raise HTTPException(status_code=404, detail="Outfit is not in the lookbook.") from None
        return outfit.to_dict()

    # ------------------------------------------------------------------
    # Branding
    # ------------------------------------------------------------------
    @app.post("/branding/icon", tags=["branding"])
    async def generate_icon(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        image_ref = await ctx.branding.generate(ctx.store.items)
        return {"brand_icon": image_ref, "warning": _warning(ctx)}

    @app.delete("/branding/icon", tags=["branding"])
    async def clear_icon(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
        await ctx.branding.clear()
        return {"brand_icon": None}

    return app


app = create_app()
