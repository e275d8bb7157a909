"""Garment extraction through the hosted multimodal model."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from chromacloset.api.ai_client import AIMalformedResponse, AIServiceClient, AIServiceError
from chromacloset.imgproc.preprocess import EncodedImage
from chromacloset.models import BoundingBox, Category, PatternType
from chromacloset.monitoring.metrics import extraction_failures_total

logger = logging.getLogger(__name__)

DETECTION_DEFAULT_CONFIDENCE = 0.8
TAG_CONFIDENCE = 1.0

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_HEX = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

_ITEM_FIELDS = (
    '"category" (one of: top, bottom, outerwear, shoes, accessories), '
    '"subcategory" (specific type such as "t-shirt", "jeans", "sneakers"), '
    '"brand" (brand name if visible, otherwise "Unknown"), '
    '"dominantColorHex" (accurate HEX code of the dominant color), '
    '"colorName" (common descriptive name such as "Navy", "Emerald", "Beige"), '
    '"colorFamily" (broad family: Red, Blue, Green, Neutral, ...), '
    '"patternType" (one of: solid, striped, plaid, floral, other)'
)

DETECTION_PROMPT = (
    "You analyse wardrobe photos. List every distinct clothing item or accessory visible. "
    'Answer with a JSON object {"items": [...]} where every entry has '
    + _ITEM_FIELDS
    + ', "confidence" (0 to 1) and "box_2d" ([ymin, xmin, ymax, xmax] normalised to 0-1000). '
    "Be precise with colors. Do not add Markdown or commentary."
)

TAG_PROMPT = (
    "The photo shows a product tag or scannable code describing one garment. "
    "Decode it and answer with a single JSON object with "
    + _ITEM_FIELDS
    + ". Do not add Markdown or commentary."
)


class ExtractionUnavailable(RuntimeError):
    """Raised when the AI service cannot be reached or fails the request."""


class ExtractionMode(str, Enum):
    """What the model is asked to read from the photo."""

    GARMENT_DETECTION = "garment_detection"
    TAG_DECODE = "tag_decode"

    @property
    def spatial(self) -> bool:
        return self is ExtractionMode.GARMENT_DETECTION


class ExtractedItem(BaseModel):
    """Boundary contract for one item returned by the model.

    Every field has a deterministic default so that callers never see a
    missing value, whatever the service returned.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    category: Category = Category.TOP
    subcategory: str = "unknown"
    brand: str = "Unknown"
    dominant_color_hex: str = Field(
        "#000000",
        validation_alias=AliasChoices("dominantColorHex", "dominant_color_hex", "colorHex"),
    )
    color_family: str = Field("Neutral", validation_alias=AliasChoices("colorFamily", "color_family"))
    color_name: str = Field("Unknown", validation_alias=AliasChoices("colorName", "color_name"))
    pattern_type: PatternType = Field(
        PatternType.SOLID,
        validation_alias=AliasChoices("patternType", "pattern_type", "pattern"),
    )
    confidence: float = DETECTION_DEFAULT_CONFIDENCE
    box: tuple[float, float, float, float] | None = Field(
        None,
        validation_alias=AliasChoices("box_2d", "box", "boundingBox"),
    )

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Category:
        return _enum_or_default(Category, value, Category.TOP)

    @field_validator("pattern_type", mode="before")
    @classmethod
    def _pattern(cls, value: Any) -> PatternType:
        return _enum_or_default(PatternType, value, PatternType.SOLID)

    @field_validator("subcategory", "brand", "color_family", "color_name", mode="before")
    @classmethod
    def _text(cls, value: Any, info: ValidationInfo) -> str:
        default = cls.model_fields[info.field_name].default
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    @field_validator("dominant_color_hex", mode="before")
    @classmethod
    def _hex(cls, value: Any) -> str:
        return normalise_hex(value) or "#000000"

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        if isinstance(value, bool):
            return DETECTION_DEFAULT_CONFIDENCE
        try:
            number = float(value)
        except (TypeError, ValueError):
            return DETECTION_DEFAULT_CONFIDENCE
        if math.isnan(number):
            return DETECTION_DEFAULT_CONFIDENCE
        return min(1.0, max(0.0, number))

    @field_validator("box", mode="before")
    @classmethod
    def _box(cls, value: Any) -> tuple[float, float, float, float] | None:
        return _parse_box(value)

    def bounding_box(self) -> BoundingBox | None:
        if self.box is None:
            return None
        ymin, xmin, ymax, xmax = self.box
        return BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax)


@dataclass(slots=True)
class ExtractionResult:
    """Items read from one photo plus a user-facing warning when the reply was unusable."""

    items: list[ExtractedItem]
    warning: str | None = None

    def __len__(self) -> int:
        return len(self.items)


def normalise_hex(value: Any) -> str | None:
    """Return ``#rrggbb`` for a valid 3- or 6-digit hex colour, otherwise ``None``."""

    if not isinstance(value, str):
        return None
    match = _HEX.match(value.strip())
    if not match:
        return None
    digits = match.group(1).lower()
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits}"


def _enum_or_default(enum_cls: type[Enum], value: Any, default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


def _parse_box(value: Any) -> tuple[float, float, float, float] | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = [value.get("ymin"), value.get("xmin"), value.get("ymax"), value.get("xmax")]
    if not isinstance(value, Sequence) or isinstance(value, str) or len(value) != 4:
        return None
    try:
        coords = tuple(float(v) for v in value)
    except (TypeError, ValueError):
        return None
    ymin, xmin, ymax, xmax = coords
    try:
        BoundingBox(ymin=ymin, xmin=xmin, ymax=ymax, xmax=xmax)
    except ValueError:
        return None
    return ymin, xmin, ymax, xmax


def parse_payload(text: str) -> Any:
    """Decode the model's JSON answer, tolerating Markdown code fences."""

    match = _FENCE.search(text)
    cleaned = match.group(1) if match else text
    return json.loads(cleaned.strip())


def coerce_item(record: Mapping[str, Any], mode: ExtractionMode) -> ExtractedItem:
    """Build an :class:`ExtractedItem` from a loose record, applying mode rules."""

    item = ExtractedItem.model_validate(dict(record))
    if mode is ExtractionMode.TAG_DECODE:
        return item.model_copy(update={"confidence": TAG_CONFIDENCE, "box": None})
    return item


def _records(payload: Any, mode: ExtractionMode) -> list[Any] | None:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, Mapping):
        return None
    items = payload.get("items")
    if isinstance(items, list):
        return items
    if mode is ExtractionMode.TAG_DECODE or "category" in payload:
        return [payload]
    return None


class ExtractionClient:
    """Sends an encoded photo to the vision model and returns normalised items."""

    def __init__(self, client: AIServiceClient, *, model: str | None = None) -> None:
        self._client = client
        self._model = model or client.settings.ai_vision_model

    async def extract(self, image: EncodedImage, mode: ExtractionMode) -> ExtractionResult:
        """Return the items found in ``image``.

        An empty result means nothing was detected. Unusable replies produce an
        empty result with a warning; transport failures raise
        :class:`ExtractionUnavailable`.
        """

        prompt = DETECTION_PROMPT if mode is ExtractionMode.GARMENT_DETECTION else TAG_PROMPT
        messages = [
            {"role": "system", "content": prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Analyse this photo and reply in JSON."},
                    {"type": "image_url", "image_url": {"url": image.as_data_url()}},
                ],
            },
        ]
        try:
            response = await self._client.chat_completion(
                messages,
                model=self._model,
                response_format={"type": "json_object"},
                temperature=0,
            )
        except AIMalformedResponse as exc:
            return self._unusable(f"unreadable body: {exc}")
        except AIServiceError as exc:
            extraction_failures_total.inc()
            logger.error("Extraction request failed: %s", exc)
            raise ExtractionUnavailable(
                "AI analysis is unavailable right now. Check your connection and try again.",
            ) from exc

        content = AIServiceClient.first_choice_content(response)
        if content is None:
            return self._unusable("no message content")
        try:
            payload = parse_payload(content)
        except ValueError:
            return self._unusable(f"invalid JSON: {content[:200]!r}")

        records = _records(payload, mode)
        if records is None:
            return self._unusable(f"unexpected payload shape: {type(payload).__name__}")

        items: list[ExtractedItem] = []
        skipped = 0
        for record in records:
            if not isinstance(record, Mapping):
                skipped += 1
                continue
            items.append(coerce_item(record, mode))
        if mode is ExtractionMode.TAG_DECODE:
            items = items[:1]

        warning = None
        if skipped:
            logger.warning("Skipped %d malformed entries in extraction reply.", skipped)
            warning = f"{skipped} detected entries could not be read and were skipped."
        logger.info("Extraction (%s) returned %d items.", mode.value, len(items))
        return ExtractionResult(items=items, warning=warning)

    @staticmethod
    def _unusable(reason: str) -> ExtractionResult:
        logger.warning("Discarding malformed extraction reply: %s", reason)
        return ExtractionResult(
            items=[],
            warning="The AI reply could not be read. Try again with a clearer photo.",
        )
