"""
Database configuration module for the check execution engine.

This module creates and validates the asyncpg connection pool used by the
storage. It ensures that the database is accessible before returning the pool.
"""

import logging

import asyncpg

from check_engine.config import EngineContext

# Module logger
logger = logging.getLogger(__name__)


async def initiate_db_pool(context: EngineContext) -> asyncpg.pool.Pool:
    """
    Create and validate a connection pool to the PostgreSQL database.

    Args:
        context: Configuration context containing database connection parameters.

    Returns:
        asyncpg.pool.Pool: A connection pool that can be used to execute database queries.

    Raises:
        Exception: If the database connection cannot be established.
    """
    pool: asyncpg.pool.Pool = await asyncpg.create_pool(
        dsn=context.dsn, min_size=1, max_size=context.db_pool_size
    )

    try:
        # Validate the connection by executing a simple query
        async with pool.acquire() as connection:
            await connection.fetchval("SELECT 1")
        logger.info("Database connection pool successfully created.")
        return pool
    except Exception as e:
        logger.error(f"Error: Could not connect to the database. {e}")
        await pool.close()
        raise
