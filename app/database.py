"""Async SQLAlchemy engine for the administrator account store."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    metadata = MetaData()


def ensure_sqlite_directory(database_url: str) -> Path | None:
    """Create the parent directory of a file-backed SQLite database."""

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
        return None
    directory = Path(url.database).expanduser().parent
    directory.mkdir(parents=True, exist_ok=True)
    return directory


class Database:
    """Owns the async engine and the session factory handed to services."""

    def __init__(self, database_url: str):
        ensure_sqlite_directory(database_url)
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create the accounts table if it does not exist yet."""

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
