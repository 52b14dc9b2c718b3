"""Wiring for the workflow API: one store per process, fresh use cases per request.

``init_store`` picks the backend from Settings (PostgreSQL when
DATABASE_URL is set, otherwise the in-memory store) and builds the event
publisher and letter store on top of it. ``close_store`` releases them.

Every route depends on ``verify_api_key`` (the shared service key) and
``get_actor`` (user id, role and school forwarded by the gateway).
"""

import logging
import secrets
from typing import Callable, Optional
from uuid import UUID

from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ...core.config import Settings
from ...core.database import close_pool, create_pool
from ..adapters import (
    InMemoryStore,
    LocalDocumentStore,
    LoggingAuditSink,
    LoggingNotificationSink,
    OpenpyxlSheetParser,
    SinkEventPublisher,
    StaticUserDirectory,
)
from ..domain.entities import Actor, Role
from ..domain.ports import IDocumentStore, IEventPublisher, ISheetParser, IUnitOfWork
from ..use_cases import (
    AssignmentEngine,
    BulkAssignUseCase,
    BulkIntakeUseCase,
    InventoryUseCase,
    WorkflowController,
)

logger = logging.getLogger(__name__)

# ========== Process State ==========

_settings: Optional[Settings] = None
_store = None  # InMemoryStore or PostgresStore
_db_pool = None
_publisher: Optional[IEventPublisher] = None
_document_store: Optional[IDocumentStore] = None


def get_settings() -> Settings:
    """Get the active settings (loaded from the environment on first use)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


async def init_store(settings: Optional[Settings] = None):
    """Initialize the store, publisher and document store.

    Called from the FastAPI lifespan and by tests.
    """
    global _settings, _store, _db_pool, _publisher, _document_store

    _settings = settings or Settings.from_env()

    if _settings.store_backend == "postgres":
        from ..adapters.postgres_store import PostgresStore

        _db_pool = await create_pool(
            _settings.database_url,
            min_size=_settings.db_pool_min_size,
            max_size=_settings.db_pool_max_size,
        )
        _store = PostgresStore(_db_pool)
    else:
        logger.warning("DATABASE_URL not set - using in-memory store (data is not persisted)")
        _store = InMemoryStore()

    _publisher = SinkEventPublisher(
        LoggingAuditSink(),
        LoggingNotificationSink(),
        StaticUserDirectory(_settings.staff_notify_user_ids),
    )
    _document_store = LocalDocumentStore(
        _settings.upload_dir,
        max_size_bytes=_settings.max_upload_size_bytes,
    )
    logger.info(f"Store initialized ({_settings.store_backend})")


async def close_store():
    """Release the store. Should be called on application shutdown."""
    global _store, _db_pool, _publisher, _document_store
    if _db_pool is not None:
        await close_pool(_db_pool)
        _db_pool = None
    _store = None
    _publisher = None
    _document_store = None


def get_store():
    """Get the active store (InMemoryStore or PostgresStore)."""
    if _store is None:
        raise RuntimeError("Store not initialized. Call init_store() first.")
    return _store


def get_db_pool():
    """Get the database connection pool (None for the in-memory store)."""
    return _db_pool


# ========== Service Authentication ==========

service_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(
    api_key: Optional[str] = Security(service_key_header),
) -> bool:
    """Check the X-API-Key shared between the gateway and this service.

    With DISABLE_AUTH=true every request passes (local development only).
    Otherwise API_KEY must be configured; a server without one rejects
    every request rather than running open.

    Raises:
        HTTPException: 401 for a missing or wrong key, 500 if API_KEY is unset
    """
    settings = get_settings()
    if settings.disable_auth:
        logger.debug("Service key check skipped (DISABLE_AUTH=true)")
        return True

    if not settings.api_key:
        logger.error("Rejecting request: API_KEY is not configured and DISABLE_AUTH is off")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service authentication is not configured",
        )
    if not api_key:
        raise _unauthorized("Missing X-API-Key header")
    if not secrets.compare_digest(api_key.encode(), settings.api_key.encode()):
        raise _unauthorized("Invalid API key")
    return True


# ========== Identity ==========


async def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_school_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    """Build the calling Actor from gateway identity headers.

    Raises:
        HTTPException: 401 if the identity headers are missing or malformed
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity. Provide X-User-Id and X-User-Role headers.",
        )
    try:
        user_id = UUID(x_user_id)
        school_id = UUID(x_school_id) if x_school_id else None
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Identity headers must carry valid UUIDs",
        )
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}",
        )
    return Actor(user_id=user_id, role=role, school_id=school_id, name=x_user_name)


# ========== Use Case Factories ==========


def get_uow_factory() -> Callable[[], IUnitOfWork]:
    """Get a factory returning a fresh unit of work per call."""
    return get_store().unit_of_work


def get_publisher() -> Optional[IEventPublisher]:
    return _publisher


def get_document_store() -> IDocumentStore:
    if _document_store is None:
        raise RuntimeError("Document store not initialized. Call init_store() first.")
    return _document_store


def get_sheet_parser() -> ISheetParser:
    """Get a spreadsheet parser instance."""
    return OpenpyxlSheetParser()


def get_engine() -> AssignmentEngine:
    return AssignmentEngine(get_uow_factory(), get_publisher())


def get_controller() -> WorkflowController:
    return WorkflowController(get_uow_factory(), get_engine(), get_publisher())


def get_inventory() -> InventoryUseCase:
    return InventoryUseCase(get_uow_factory(), get_publisher())


def get_bulk_intake() -> BulkIntakeUseCase:
    return BulkIntakeUseCase(get_inventory(), get_sheet_parser())


def get_bulk_assign() -> BulkAssignUseCase:
    return BulkAssignUseCase(get_engine(), get_uow_factory(), get_sheet_parser())
