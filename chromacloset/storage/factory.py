"""Backend selection from settings."""

from __future__ import annotations

from pathlib import Path

from chromacloset.config.settings import Settings
from chromacloset.storage.backends import InMemorySlots, JsonFileSlots, SlotBackend
from chromacloset.storage.sql import SqlSlots

BACKENDS = ("json", "sql", "memory")


def build_backend(settings: Settings) -> SlotBackend:
    """Return the slot backend named by ``settings.storage_backend``."""

    if settings.storage_backend == "sql":
        return SqlSlots(settings.database_url)
    if settings.storage_backend == "memory":
        return InMemorySlots()
    if settings.storage_backend == "json":
        return JsonFileSlots(Path(settings.storage_path))
    raise ValueError(f"Unknown storage backend {settings.storage_backend!r}; expected one of {BACKENDS}.")


async def dispose_backend(backend: SlotBackend) -> None:
    if isinstance(backend, SqlSlots):
        await backend.dispose()
