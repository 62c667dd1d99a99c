"""
PostgreSQL connection helper for harborlist-authz.

Stores and sinks receive a connection factory rather than sharing a
process-global client, so tests can substitute fakes and each caller owns
the lifetime of the connections it opens.
"""

from typing import Awaitable, Callable

import psycopg
from loguru import logger

from harbor_core.config import settings

ConnectionFactory = Callable[[], Awaitable[psycopg.AsyncConnection]]


async def get_db_connection(dsn: str | None = None) -> psycopg.AsyncConnection:
    """
    Open an async PostgreSQL connection.

    Usage:
        async with await get_db_connection() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute("SELECT 1")

    Returns:
        psycopg.AsyncConnection: A PostgreSQL connection, closed when the
        ``async with`` block exits.
    """
    try:
        conn = await psycopg.AsyncConnection.connect(dsn or settings.POSTGRES_DSN)
        logger.debug("Connected to PostgreSQL")
        return conn
    except Exception as e:
        logger.error(f"Failed to connect to PostgreSQL: {e}")
        raise
