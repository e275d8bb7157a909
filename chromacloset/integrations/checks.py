"""Connectivity checks for the hosted AI service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from chromacloset.api.ai_client import AIServiceClient
from chromacloset.config.settings import get_settings
from chromacloset.storage.factory import build_backend, dispose_backend


@dataclass(slots=True)
class IntegrationCheckResult:
    """Structured result describing the integration check outcome."""

    name: str
    success: bool
    message: str


async def _run_check(
    name: str,
    factory: Callable[[], Awaitable[bool]],
    success_message: str,
) -> IntegrationCheckResult:
    try:
        result = await factory()
    except Exception as exc:
        return IntegrationCheckResult(name=name, success=False, message=str(exc))

    if result:
        return IntegrationCheckResult(name=name, success=True, message=success_message)
    return IntegrationCheckResult(
        name=name,
        success=False,
        message="Service responded with non-success status.",
    )


async def check_ai_service() -> IntegrationCheckResult:
    """List the models of the configured AI service."""

    settings = get_settings()
    client = AIServiceClient(settings)

    async def _ping() -> bool:
        try:
            return await client.ping()
        finally:
            await client.close()

    return await _run_check(
        name="AI service",
        factory=_ping,
        success_message=f"{settings.ai_base_url} is reachable.",
    )


async def check_storage() -> IntegrationCheckResult:
    """Make sure the configured closet storage can be read."""

    settings = get_settings()

    async def _load() -> bool:
        backend = build_backend(settings)
        try:
            await backend.load()
        finally:
            await dispose_backend(backend)
        return True

    return await _run_check(
        name=f"Storage ({settings.storage_backend})",
        factory=_load,
        success_message="Closet storage is readable.",
    )


async def run_all_checks() -> list[IntegrationCheckResult]:
    """Execute all integration checks concurrently."""

    return list(await asyncio.gather(check_ai_service(), check_storage()))
