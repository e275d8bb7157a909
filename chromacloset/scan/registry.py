"""Token-addressed registry of active scan sessions."""

from __future__ import annotations

import logging
import secrets
from typing import Callable

from chromacloset.scan.session import ReviewSession

logger = logging.getLogger(__name__)


class UnknownSession(KeyError):
    """Raised when a token does not belong to a live session."""


class SessionRegistry:
    """Creates, looks up and tears down review sessions.

    In exclusive mode (the default, one closet per process) starting a new
    session closes every other one, so late extraction results of a
    superseded session are dropped instead of landing in the inventory.
    """

    def __init__(self, factory: Callable[[str], ReviewSession], *, exclusive: bool = True) -> None:
        self._factory = factory
        self._exclusive = exclusive
        self._sessions: dict[str, ReviewSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, token: object) -> bool:
        return token in self._sessions

    async def create(self) -> ReviewSession:
        if self._exclusive:
            await self.close_all()
        token = secrets.token_urlsafe(16)
        session = self._factory(token)
        self._sessions[token] = session
        logger.info("Opened scan session %s.", token)
        return session

    def get(self, token: str) -> ReviewSession:
        try:
            return self._sessions[token]
        except KeyError:
            raise UnknownSession(token) from None

    async def close(self, token: str) -> None:
        session = self._sessions.pop(token, None)
        if session is None:
            raise UnknownSession(token)
        await session.close()

    async def close_all(self) -> None:
        sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            await session.close()
