"""Database utilities for the streaming tracker."""

from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every table."""

    metadata = MetaData()


class Database:
    """Thin wrapper managing the SQLAlchemy async engine and sessions."""

    def __init__(self, database_url: str, **engine_options: Any):
        self._engine: AsyncEngine = create_async_engine(database_url, **engine_options)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create database tables if they do not yet exist."""

        # Imported for its side effect of registering every table on Base.metadata.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        """Ensure newly introduced show columns are available on existing tables."""

        inspector = inspect(sync_connection)
        if "shows" not in inspector.get_table_names():
            return

        existing_columns = {
            column["name"] for column in inspector.get_columns("shows")
        }

        def _ensure_column(name: str, ddl: str) -> None:
            if name in existing_columns:
                return
            sync_connection.execute(text(ddl))
            existing_columns.add(name)

        _ensure_column(
            "poster_image",
            "ALTER TABLE shows ADD COLUMN poster_image VARCHAR(1024)",
        )
        _ensure_column(
            "date_cancelled",
            "ALTER TABLE shows ADD COLUMN date_cancelled DATETIME",
        )

    async def dispose(self) -> None:
        """Dispose of the underlying database engine."""

        await self._engine.dispose()
