"""Tests for the scan session registry."""

from __future__ import annotations

import pytest

from chromacloset.imgproc.preprocess import ImagePreprocessor
from chromacloset.scan.registry import SessionRegistry, UnknownSession
from chromacloset.scan.session import ReviewSession
from chromacloset.storage.backends import InMemorySlots
from chromacloset.storage.inventory import InventoryStore


def _registry(stub_extractor, *, exclusive: bool = True) -> SessionRegistry:
    store = InventoryStore(InMemorySlots())
    return SessionRegistry(
        lambda token: ReviewSession(store, ImagePreprocessor(), stub_extractor(), token=token),
        exclusive=exclusive,
    )


@pytest.mark.asyncio
async def test_new_session_supersedes_previous(stub_extractor) -> None:
    registry = _registry(stub_extractor)

    first = await registry.create()
    second = await registry.create()

    assert first.closed
    assert not second.closed
    assert first.token not in registry
    assert registry.get(second.token) is second
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_non_exclusive_registry_keeps_sessions(stub_extractor) -> None:
    registry = _registry(stub_extractor, exclusive=False)

    first = await registry.create()
    second = await registry.create()

    assert first.token != second.token
    assert len(registry) == 2

    await registry.close_all()
    assert first.closed and second.closed
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_unknown_tokens(stub_extractor) -> None:
    registry = _registry(stub_extractor)
    session = await registry.create()

    await registry.close(session.token)

    assert session.closed
    with pytest.raises(UnknownSession):
        registry.get(session.token)
    with pytest.raises(UnknownSession):
        await registry.close(session.token)
