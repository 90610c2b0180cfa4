"""
Connection scoping for SQLAlchemyRelationStore.

A store bound to an AsyncEngine opens a connection per operation: reads
use a plain connection, writes run in their own transaction. A store bound
to an AsyncConnection reuses it for every operation and leaves commit and
rollback to whoever opened it.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield the connection one store operation should run on.

    Args:
        conn: The store's engine or caller-owned connection
        transactional: For an engine, wrap the operation in ``begin()``
            instead of ``connect()``; ignored for a connection

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(text('DELETE FROM "eav_entity_attribute"'))
    """
    if not isinstance(conn, AsyncEngine):
        yield conn
    elif transactional:
        async with conn.begin() as connection:
            yield connection
    else:
        async with conn.connect() as connection:
            yield connection


__all__ = ["execute_with_connection"]
