"""Style assistant: outfits, gap analysis and chat."""

from .service import StylingChat, StylistService, StylistUnavailable

__all__ = ["StylingChat", "StylistService", "StylistUnavailable"]
