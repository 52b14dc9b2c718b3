"""asyncpg helpers shared by the PostgreSQL store, the CLI and /health.

A unit of work in the PostgreSQL store is one ``database_transaction``:

    async with database_transaction(pool) as conn:
        await conn.fetch("SELECT ... FROM devices WHERE id = ANY($1) FOR UPDATE NOWAIT", ids)
        await conn.execute("UPDATE device_applications ...")

Driver errors leaving the block are translated into the RTBError hierarchy;
errors the workflow raised itself are re-raised untouched after rollback.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from .exceptions import (
    ConflictError,
    ConnectionPoolError,
    DatabaseError,
    IntegrityError,
    RTBError,
    TransactionError,
)

logger = logging.getLogger(__name__)

ACQUIRE_TIMEOUT_SECONDS = 30.0

# SQLSTATEs meaning another transaction holds the rows we need:
# lock_not_available (NOWAIT), deadlock_detected, serialization_failure
LOCK_CONFLICT_STATES = frozenset({"55P03", "40P01", "40001"})

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
CHECK_VIOLATION = "23514"


async def _acquire(pool):
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")
    try:
        return await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        raise ConnectionPoolError(
            "Timed out waiting for a database connection",
            details={"timeout_seconds": ACQUIRE_TIMEOUT_SECONDS},
        )
    except Exception as e:
        raise ConnectionPoolError(f"Could not acquire a database connection: {e}", cause=e)


@asynccontextmanager
async def database_transaction(
    pool,
    isolation: str = "read_committed",
    readonly: bool = False,
) -> AsyncIterator[Any]:
    """Run the block inside one transaction on a pooled connection.

    Commits when the block exits normally and rolls back otherwise.

    Raises:
        ConnectionPoolError: No connection could be acquired
        TransactionError: The transaction could not be started
        ConflictError: A row lock was held by a concurrent transaction
        IntegrityError: A constraint rejected the write
    """
    conn = await _acquire(pool)
    try:
        transaction = conn.transaction(isolation=isolation, readonly=readonly)
        try:
            await transaction.start()
        except Exception as e:
            raise TransactionError(f"Could not start transaction: {e}", cause=e)

        try:
            yield conn
            await transaction.commit()
            logger.debug("Transaction committed")
        except BaseException as e:
            try:
                await transaction.rollback()
                logger.debug(f"Transaction rolled back: {e!r}")
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            if isinstance(e, Exception) and not isinstance(e, RTBError):
                raise translate_db_error(e)
            raise
    finally:
        await pool.release(conn)


@asynccontextmanager
async def database_connection(pool) -> AsyncIterator[Any]:
    """A pooled connection without an explicit transaction."""
    conn = await _acquire(pool)
    try:
        yield conn
    finally:
        await pool.release(conn)


def _integrity(kind: str) -> Callable[[Exception], RTBError]:
    def build(e: Exception) -> RTBError:
        constraint = getattr(e, "constraint_name", None) or kind
        return IntegrityError(f"Constraint {constraint} violated: {e}", constraint=constraint, cause=e)

    return build


_BY_SQLSTATE: dict[str, Callable[[Exception], RTBError]] = {
    UNIQUE_VIOLATION: _integrity("unique"),
    FOREIGN_KEY_VIOLATION: _integrity("foreign_key"),
    NOT_NULL_VIOLATION: _integrity("not_null"),
    CHECK_VIOLATION: _integrity("check"),
}

# Fallback for errors that carry no SQLSTATE (wrapped or re-raised by callers)
_BY_MESSAGE: list[tuple[tuple[str, ...], Callable[[Exception], RTBError]]] = [
    (("duplicate", "unique"), _integrity("unique")),
    (("foreign key",), _integrity("foreign_key")),
    (("not null",), _integrity("not_null")),
]


def translate_db_error(e: Exception) -> RTBError:
    """Map a driver exception onto the RTBError hierarchy."""
    if isinstance(e, RTBError):
        return e

    sqlstate = getattr(e, "sqlstate", None)
    message = str(e).lower()

    if sqlstate in LOCK_CONFLICT_STATES or "could not obtain lock" in message or "deadlock" in message:
        logger.info(f"Lock conflict ({sqlstate or 'no sqlstate'}): {e}")
        return ConflictError(
            "Resource is locked by a concurrent operation, retry the request",
            cause=e,
        )

    if sqlstate in _BY_SQLSTATE:
        return _BY_SQLSTATE[sqlstate](e)
    for needles, build in _BY_MESSAGE:
        if any(n in message for n in needles):
            return build(e)

    if isinstance(e, asyncio.TimeoutError) or "timed out" in message or "timeout" in message:
        return TransactionError(f"Database operation timed out: {e}", operation="query", cause=e)

    return DatabaseError(f"Database operation failed: {e}", cause=e)


async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Open an asyncpg pool.

    Raises:
        ConnectionPoolError: If the pool cannot be created
    """
    import asyncpg

    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except Exception as e:
        raise ConnectionPoolError(f"Failed to create database pool: {e}", cause=e)

    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def close_pool(pool, timeout: float = 10.0):
    """Close the pool, terminating it if a graceful close fails."""
    if pool is None:
        return
    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
    except Exception as e:
        logger.warning(f"Pool did not close cleanly ({e!r}), terminating")
        pool.terminate()
    else:
        logger.info("Database pool closed")


async def check_database_health(pool) -> dict[str, Any]:
    """Probe the database with ``SELECT 1`` and report pool usage."""
    if pool is None:
        return {"healthy": False, "error": "Pool not initialized"}

    try:
        async with database_connection(pool) as conn:
            ok = await conn.fetchval("SELECT 1") == 1
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return {"healthy": False, "error": str(e)}

    size, idle = pool.get_size(), pool.get_idle_size()
    return {"healthy": ok, "pool_size": size, "pool_free": idle, "pool_used": size - idle}


__all__ = [
    "database_transaction",
    "database_connection",
    "translate_db_error",
    "create_pool",
    "close_pool",
    "check_database_health",
]
