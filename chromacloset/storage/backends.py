"""Key/value slot backends the inventory is persisted to."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Mapping, Protocol


class SlotBackend(Protocol):
    """Durable mapping of slot names to serialised values.

    ``save`` replaces the whole mapping in one step so that a write either
    lands completely or not at all.
    """

    async def load(self) -> dict[str, str]: ...

    async def save(self, slots: Mapping[str, str]) -> None: ...

    async def clear(self) -> None: ...


class InMemorySlots:
    """Volatile backend used by tests and the ``memory`` storage setting."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self.slots: dict[str, str] = dict(initial or {})
        self.writes = 0

    async def load(self) -> dict[str, str]:
        return dict(self.slots)

    async def save(self, slots: Mapping[str, str]) -> None:
        self.slots = dict(slots)
        self.writes += 1

    async def clear(self) -> None:
        self.slots = {}
        self.writes += 1


class JsonFileSlots:
    """Stores all slots in one JSON document, replaced atomically on save."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        body = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        payload = json.loads(body) if body.strip() else {}
        if not isinstance(payload, dict):
            raise ValueError(f"Slot file {self._path} does not contain a JSON object.")
        return {str(key): str(value) for key, value in payload.items()}

    async def save(self, slots: Mapping[str, str]) -> None:
        body = json.dumps(dict(slots), ensure_ascii=False, indent=2)
        await asyncio.to_thread(self._write_file, self._path, body)

    async def clear(self) -> None:
        await asyncio.to_thread(self._delete_file, self._path)

    @staticmethod
    def _write_file(path: Path, body: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(body, encoding="utf-8")
        os.replace(tmp_path, path)

    @staticmethod
    def _delete_file(path: Path) -> None:
        if path.exists():
            path.unlink()
