"""Persistence for the closet inventory."""

from .backends import InMemorySlots, JsonFileSlots, SlotBackend
from .factory import build_backend, dispose_backend
from .inventory import DuplicateItemError, InventoryStore, PersistenceWarning
from .sql import SqlSlots

__all__ = [
    "DuplicateItemError",
    "InMemorySlots",
    "InventoryStore",
    "JsonFileSlots",
    "PersistenceWarning",
    "SlotBackend",
    "SqlSlots",
    "build_backend",
    "dispose_backend",
]
