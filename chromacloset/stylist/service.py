"""Outfit curation, wardrobe gap analysis and styling chat."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from chromacloset.api.ai_client import AIServiceClient, AIServiceError
from chromacloset.extraction.client import parse_payload
from chromacloset.models import (
    ChatMessage,
    GapSearchResult,
    OutfitRecommendation,
    StylePersona,
    WardrobeGap,
    WardrobeItem,
)
from chromacloset.stylist import prompts

logger = logging.getLogger(__name__)

_URL = re.compile(r"https?://[^\s)\]>\"']+")
_PRIORITIES = ("high", "medium", "low")


class StylistUnavailable(RuntimeError):
    """Raised when the style assistant cannot reach the AI service."""


class _OutfitPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = "Untitled look"
    description: str = ""
    stylist_tip: str = Field("", validation_alias=AliasChoices("stylistTip", "stylist_tip"))
    item_ids: list[str] = Field(default_factory=list, validation_alias=AliasChoices("itemIds", "item_ids"))
    occasion: str = ""
    style_vibe: str = Field("", validation_alias=AliasChoices("styleVibe", "style_vibe"))

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> str:
        return str(value) if value not in (None, "") else uuid.uuid4().hex

    @field_validator("item_ids", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(entry) for entry in value]


class _GapPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item_type: str = Field(validation_alias=AliasChoices("itemType", "item_type"))
    suggested_color: str = Field(validation_alias=AliasChoices("suggestedColor", "suggested_color"))
    reasoning: str = ""
    priority: str = "medium"

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in _PRIORITIES:
            return value.strip().lower()
        return "medium"


def _json_list(content: str | None, key: str) -> list[Any]:
    if not content:
        return []
    try:
        payload = parse_payload(content)
    except ValueError:
        logger.warning("Stylist reply is not JSON: %s", content[:200])
        return []
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    return payload if isinstance(payload, list) else []


class StylistService:
    """Thin layer over the chat model for the style assistant view."""

    def __init__(self, client: AIServiceClient) -> None:
        self._client = client

    async def _complete(self, messages: list[dict[str, Any]], **kwargs: Any) -> str | None:
        try:
            response = await self._client.chat_completion(messages, **kwargs)
        except AIServiceError as exc:
            logger.error("Style assistant request failed: %s", exc)
            raise StylistUnavailable("Style engine is warming up. Try again in a moment.") from exc
        return AIServiceClient.first_choice_content(response)

    async def generate_outfits(
        self,
        items: Sequence[WardrobeItem],
        occasion: str,
        persona: StylePersona,
        weather: str | None = None,
    ) -> list[OutfitRecommendation]:
        """Curate outfits from ``items``; at least two items are needed."""

        if len(items) < 2:
            return []

        content = await self._complete(
            prompts.outfit_messages(items, occasion, persona, weather),
            response_format={"type": "json_object"},
        )
        known = {item.id for item in items}
        outfits: list[OutfitRecommendation] = []
        for entry in _json_list(content, "outfits"):
            try:
                parsed = _OutfitPayload.model_validate(entry)
            except ValidationError:
                logger.warning("Skipping malformed outfit: %s", entry)
                continue
            item_ids = [item_id for item_id in parsed.item_ids if item_id in known]
            if not item_ids:
                continue
            outfits.append(
                OutfitRecommendation(
                    id=parsed.id,
                    title=parsed.title,
                    description=parsed.description,
                    stylist_tip=parsed.stylist_tip,
                    item_ids=item_ids,
                    occasion=parsed.occasion or occasion,
                    style_vibe=parsed.style_vibe or persona.value,
                ),
            )
        return outfits[: prompts.OUTFIT_COUNT]

    async def analyze_gaps(self, items: Sequence[WardrobeItem]) -> list[WardrobeGap]:
        """Suggest missing versatile basics for the current inventory."""

        if not items:
            return []

        content = await self._complete(prompts.gap_messages(items), response_format={"type": "json_object"})
        gaps: list[WardrobeGap] = []
        for entry in _json_list(content, "gaps"):
            try:
                parsed = _GapPayload.model_validate(entry)
            except ValidationError:
                logger.warning("Skipping malformed gap: %s", entry)
                continue
            gaps.append(
                WardrobeGap(
                    item_type=parsed.item_type,
                    suggested_color=parsed.suggested_color,
                    reasoning=parsed.reasoning,
                    priority=parsed.priority,
                ),
            )
        return gaps[: prompts.GAP_COUNT]

    async def search_gap_items(self, gap: WardrobeGap) -> GapSearchResult:
        """Ask for shopping suggestions that fill ``gap``."""

        content = await self._complete(prompts.gap_search_messages(gap)) or ""
        sources = list(dict.fromkeys(match.rstrip(".,") for match in _URL.findall(content)))
        return GapSearchResult(text=content, sources=sources)

    def start_chat(self, items: Sequence[WardrobeItem], persona: StylePersona) -> "StylingChat":
        return StylingChat(self._client, prompts.chat_system_instruction(items, persona), persona=persona)


class StylingChat:
    """Multi-turn styling conversation with a fixed system instruction."""

    def __init__(self, client: AIServiceClient, system_instruction: str, *, persona: StylePersona) -> None:
        self._client = client
        self._system_instruction = system_instruction
        self.persona = persona
        self.history: list[ChatMessage] = []

    def _messages(self) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self._system_instruction}]
        for message in self.history:
            role = "assistant" if message.role == "model" else "user"
            messages.append({"role": role, "content": message.text})
        return messages

    async def send(self, text: str) -> ChatMessage | None:
        """Send a user turn and return the model's reply; blank input is ignored."""

        if not text.strip():
            return None
        self.history.append(ChatMessage(role="user", text=text))
        try:
            response = await self._client.chat_completion(self._messages())
        except AIServiceError as exc:
            logger.error("Styling chat request failed: %s", exc)
            self.history.pop()
            raise StylistUnavailable("The concierge is unavailable. Try again in a moment.") from exc
        reply = ChatMessage(role="model", text=AIServiceClient.first_choice_content(response) or "")
        self.history.append(reply)
        return reply
