"""Domain records shared across the scan, storage and stylist layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

BOX_SCALE = 1000


class Category(str, Enum):
    """Top-level garment buckets."""

    TOP = "top"
    BOTTOM = "bottom"
    OUTERWEAR = "outerwear"
    SHOES = "shoes"
    ACCESSORIES = "accessories"


class PatternType(str, Enum):
    """Surface patterns recognised by the extraction prompt."""

    SOLID = "solid"
    STRIPED = "striped"
    PLAID = "plaid"
    FLORAL = "floral"
    OTHER = "other"


class StylePersona(str, Enum):
    """Style personas offered by the style assistant."""

    MINIMALIST = "Minimalist"
    STREETWEAR = "Streetwear"
    CLASSIC_PROFESSIONAL = "Classic Professional"
    BOHEMIAN = "Bohemian"
    QUIET_LUXURY = "Quiet Luxury"
    BOLD_ECLECTIC = "Bold & Eclectic"


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Normalised rectangle (0-1000 scale) locating an item in its photo."""

    ymin: float
    xmin: float
    ymax: float
    xmax: float

    def __post_init__(self) -> None:
        for value in (self.ymin, self.xmin, self.ymax, self.xmax):
            if not 0 <= value <= BOX_SCALE:
                raise ValueError(f"Box coordinate {value} is outside 0..{BOX_SCALE}.")
        if not (self.xmin < self.xmax and self.ymin < self.ymax):
            raise ValueError("Box must satisfy xmin < xmax and ymin < ymax.")

    def to_pixels(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Return a ``(left, upper, right, lower)`` crop box for an image of the given size."""

        left = int(self.xmin * width / BOX_SCALE)
        upper = int(self.ymin * height / BOX_SCALE)
        right = max(left + 1, int(round(self.xmax * width / BOX_SCALE)))
        lower = max(upper + 1, int(round(self.ymax * height / BOX_SCALE)))
        return left, upper, min(right, width), min(lower, height)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BoundingBox":
        return cls(
            ymin=float(payload["ymin"]),
            xmin=float(payload["xmin"]),
            ymax=float(payload["ymax"]),
            xmax=float(payload["xmax"]),
        )


@dataclass(frozen=True, slots=True)
class WardrobeItem:
    """One catalogued garment. Instances never change after commit."""

    id: str
    category: Category
    subcategory: str
    brand: str
    image_ref: str
    dominant_color_hex: str
    color_family: str
    color_name: str
    pattern_type: PatternType
    confidence: float
    created_at: int
    box: BoundingBox | None = None
    palette_hex: tuple[str, ...] = ()
    secondary_color_hex: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence {self.confidence} is outside 0..1.")

    @property
    def label(self) -> str:
        return f"{self.color_name} {self.subcategory}"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["category"] = self.category.value
        payload["pattern_type"] = self.pattern_type.value
        payload["palette_hex"] = list(self.palette_hex)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "WardrobeItem":
        box = payload.get("box")
        return cls(
            id=str(payload["id"]),
            category=Category(payload["category"]),
            subcategory=str(payload["subcategory"]),
            brand=str(payload.get("brand") or "Unknown"),
            image_ref=str(payload.get("image_ref") or ""),
            dominant_color_hex=str(payload["dominant_color_hex"]),
            color_family=str(payload["color_family"]),
            color_name=str(payload["color_name"]),
            pattern_type=PatternType(payload["pattern_type"]),
            confidence=float(payload["confidence"]),
            created_at=int(payload["created_at"]),
            box=BoundingBox.from_dict(box) if box else None,
            palette_hex=tuple(payload.get("palette_hex") or ()),
            secondary_color_hex=payload.get("secondary_color_hex"),
        )


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Record of one committed scan and the items it produced."""

    timestamp: int
    item_ids: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "item_ids": list(self.item_ids)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ScanResult":
        return cls(timestamp=int(payload["timestamp"]), item_ids=tuple(payload.get("item_ids") or ()))


@dataclass(slots=True)
class OutfitRecommendation:
    """A curated look built from inventory item ids."""

    id: str
    title: str
    description: str
    stylist_tip: str
    item_ids: list[str]
    occasion: str
    style_vibe: str
    is_saved: bool = False
    date_saved: int | None = None
    last_worn: int | None = None
    user_notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "OutfitRecommendation":
        return cls(**{key: payload[key] for key in cls.__dataclass_fields__ if key in payload})

    def saved_copy(self, saved_at: int) -> "OutfitRecommendation":
        return replace(self, item_ids=list(self.item_ids), is_saved=True, date_saved=saved_at)


@dataclass(slots=True)
class WardrobeGap:
    """A missing basic suggested by the style assistant."""

    item_type: str
    suggested_color: str
    reasoning: str
    priority: str = "medium"


@dataclass(slots=True)
class ChatMessage:
    """One turn of the styling conversation."""

    role: str
    text: str


@dataclass(slots=True)
class GapSearchResult:
    """Shopping suggestions for a wardrobe gap."""

    text: str
    sources: list[str] = field(default_factory=list)
