from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect, text

from app.database import Database


def _initialise_legacy_schema(database_path: str) -> None:
    """Create a legacy shows table lacking the poster and cancellation columns."""

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    """
                    CREATE TABLE shows (
                        id INTEGER PRIMARY KEY,
                        created_at DATETIME,
                        updated_at DATETIME,
                        name VARCHAR(255),
                        num_seasons INTEGER,
                        platform_id INTEGER,
                        account_id INTEGER,
                        cancelled BOOLEAN NOT NULL DEFAULT 0
                    )
                    """
                )
            )
            connection.execute(
                text(
                    "INSERT INTO shows (name, num_seasons, account_id) "
                    "VALUES ('Legacy', 2, 1)"
                )
            )
    finally:
        engine.dispose()


def _show_columns(database_path: str) -> set[str]:
    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        return {column["name"] for column in inspector.get_columns("shows")}
    finally:
        inspector_engine.dispose()


def test_create_all_adds_missing_show_columns(tmp_path) -> None:
    """Schema migrations should backfill columns introduced after a table existed."""

    database_path = tmp_path / "legacy.db"
    _initialise_legacy_schema(str(database_path))

    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{database_path}")
        try:
            await database.create_all()
        finally:
            await database.dispose()

    asyncio.run(runner())

    columns = _show_columns(str(database_path))
    assert {"poster_image", "date_cancelled"} <= columns


def test_create_all_is_repeatable(tmp_path) -> None:
    database_path = tmp_path / "fresh.db"

    async def runner() -> set[str]:
        database = Database(f"sqlite+aiosqlite:///{database_path}")
        try:
            await database.create_all()
            await database.create_all()
            async with database.engine.connect() as connection:
                return set(
                    await connection.run_sync(
                        lambda sync_connection: inspect(sync_connection).get_table_names()
                    )
                )
        finally:
            await database.dispose()

    tables = asyncio.run(runner())

    assert {
        "accounts",
        "users",
        "watchers",
        "platforms",
        "platform_aliases",
        "shows",
        "show_status",
        "watchers_to_show_statuses",
    } <= tables
