"""SQLAlchemy-backed slot storage."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from sqlalchemy import DateTime, String, Text, delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for ORM models."""


class Slot(Base):
    """One named slot of persisted closet state."""

    __tablename__ = "slots"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )


class SqlSlots:
    """Keeps slots in a ``slots`` table; every save runs in one transaction."""

    def __init__(self, database_url: str | None = None, *, engine: AsyncEngine | None = None) -> None:
        if engine is None:
            if not database_url:
                raise ValueError("Either database_url or engine is required.")
            _ensure_sqlite_dir(database_url)
            engine = create_async_engine(database_url, echo=False)
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        self._ready = False

    async def init_db(self) -> None:
        """Create the slots table if it does not exist."""

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._ready = True

    async def _ensure_ready(self) -> None:
        if not self._ready:
            await self.init_db()

    async def load(self) -> dict[str, str]:
        await self._ensure_ready()
        async with self._sessions() as session:
            result = await session.execute(select(Slot))
            return {slot.key: slot.value for slot in result.scalars()}

    async def save(self, slots: Mapping[str, str]) -> None:
        await self._ensure_ready()
        async with self._sessions() as session, session.begin():
            await session.execute(delete(Slot))
            session.add_all([Slot(key=key, value=value) for key, value in slots.items()])

    async def clear(self) -> None:
        await self._ensure_ready()
        async with self._sessions() as session, session.begin():
            await session.execute(delete(Slot))

    async def dispose(self) -> None:
        await self._engine.dispose()


def _ensure_sqlite_dir(database_url: str) -> None:
    if not database_url.startswith("sqlite"):
        return
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
