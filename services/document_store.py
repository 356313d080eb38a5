"""Document store facade over the database session factory."""

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database import crud
from database.crud import Filter
from utils.logger import logger


def is_connectivity_error(exc: BaseException) -> bool:
    """True for failures that mean the store is unreachable, not that the write is bad."""
    if isinstance(exc, (OperationalError, InterfaceError, OSError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


class DocumentStore:
    """
    Async document store: one session per call.

    Every call logs a failure and re-raises the original exception.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            async with self._session_maker() as session:
                return await crud.get_document(session, collection, doc_id)
        except Exception as e:
            logger.error(f"Failed to get document {collection}/{doc_id}: {e}")
            raise

    async def set_document(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> dict[str, Any]:
        try:
            async with self._session_maker() as session:
                return await crud.set_document(session, collection, doc_id, data, merge=merge)
        except Exception as e:
            logger.error(f"Failed to write document {collection}/{doc_id}: {e}")
            raise

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        try:
            async with self._session_maker() as session:
                return await crud.delete_document(session, collection, doc_id)
        except Exception as e:
            logger.error(f"Failed to delete document {collection}/{doc_id}: {e}")
            raise

    async def query_collection(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        try:
            async with self._session_maker() as session:
                return await crud.query_collection(
                    session,
                    collection,
                    filters,
                    order_by=order_by,
                    descending=descending,
                    limit=limit,
                )
        except Exception as e:
            logger.error(f"Failed to query collection {collection}: {e}")
            raise

    async def ping(self) -> None:
        """Health check round trip, raises when the store is unreachable."""
        async with self._session_maker() as session:
            await crud.ping(session)
