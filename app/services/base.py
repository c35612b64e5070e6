"""Shared plumbing for services backed by the relational store."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .errors import StoreError

DUPLICATE_KEY_MARKERS = (
    "duplicate key value violates unique constraint",
    "unique constraint failed",
)


class DbServiceBase:
    """Gives each service bounded sessions, transactions and paging helpers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        query_timeout: float = 10.0,
        page_size: int = 20,
    ):
        self._session_factory = session_factory
        self._query_timeout = query_timeout
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session limited by the query timeout.

        Store failures surface as :class:`StoreError` naming ``operation``;
        an expired budget raises :class:`TimeoutError`.
        """

        try:
            async with asyncio.timeout(self._query_timeout):
                async with self._session_factory() as session:
                    yield session
        except SQLAlchemyError as exc:
            raise StoreError(operation) from exc

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Run the block in one transaction, rolled back if anything escapes it."""

        async with self._session(operation) as session:
            async with session.begin():
                yield session

    def paging(self, page: int) -> int:
        """Return the row offset for a 1-based page number."""

        return (max(page, 1) - 1) * self._page_size

    @staticmethod
    def is_duplicate_record_error(exc: BaseException) -> bool:
        if not isinstance(exc, IntegrityError):
            return False
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in DUPLICATE_KEY_MARKERS)
