"""
Connection handling helper for head-office database access.

Repositories accept either an ``AsyncEngine`` (they open a connection per
call) or an ``AsyncConnection`` owned by the caller (they run inside the
caller's transaction). ``execute_with_connection`` hides that difference.
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
    Yield a connection ready for ``execute()`` calls.

    Args:
        conn: Database engine or an already open connection
        transactional: With an engine, commit on exit (``begin``) when True,
            or use a plain ``connect`` for reads when False. Ignored for
            connections; the caller manages their transaction.

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(stmt)
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    else:
        yield conn
