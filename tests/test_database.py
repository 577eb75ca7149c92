from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app import db_models  # noqa: F401 - registers the users table
from app.database import Database, ensure_sqlite_directory


def test_create_all_creates_users_table(tmp_path) -> None:
    database_path = tmp_path / "fresh.db"

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        assert "users" in inspector.get_table_names()
        columns = {column["name"] for column in inspector.get_columns("users")}
        assert {"username", "email", "password_hash", "last_login_at"} <= columns
    finally:
        inspector_engine.dispose()


def test_sqlite_parent_directory_is_created(tmp_path) -> None:
    database_path = tmp_path / "nested" / "state" / "users.db"

    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    assert database_path.exists()


def test_ensure_sqlite_directory_ignores_memory_and_other_backends() -> None:
    assert ensure_sqlite_directory("sqlite+aiosqlite:///:memory:") is None
    assert ensure_sqlite_directory("postgresql+asyncpg://user@host/catalog") is None
