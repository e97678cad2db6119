"""Transactional session scope for application services."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payeebatch.application.ports import UnitOfWorkFactory
from payeebatch.domain.batch.exceptions import StoreUnavailableError
from payeebatch.infrastructure.persistence.sqlalchemy.repositories.factory import (
    SQLAlchemyRepositoryFactory,
)

logger = logging.getLogger(__name__)

# Raised when the database cannot be reached at all
_CONNECTION_ERRORS = (OperationalError, InterfaceError, ConnectionError)


class SQLAlchemyUnitOfWork(UnitOfWorkFactory):
    """Opens one session per use; commits on success, rolls back on error.

    Connection-level failures are translated to ``StoreUnavailableError`` so
    callers can fall back to the local cache.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    def __call__(self):
        return self._scope()

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[SQLAlchemyRepositoryFactory]:
        try:
            async with self._session_maker() as session:
                try:
                    yield SQLAlchemyRepositoryFactory(session)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except _CONNECTION_ERRORS as e:
            logger.warning("Database unavailable: %s", e)
            raise StoreUnavailableError(f"Database unavailable: {e}") from e
