"""Chromacloset: a colour-aware wardrobe catalogue."""

__version__ = "0.1.0"
