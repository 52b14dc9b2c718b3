"""FastAPI application for the device application workflow.

This is the main entry point for the workflow API server.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.database import check_database_health
from .api import (
    applications_router,
    inventory_router,
    me_router,
    register_exception_handlers,
)
from .api.dependencies import close_store, get_db_pool, get_settings, init_store

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store before serving and release it on shutdown."""
    logger.info("Starting RTB Device Workflow API...")
    try:
        await init_store()
    except Exception as e:
        logger.error(f"Store initialization failed: {e}")
        raise

    yield

    await close_store()
    logger.info("RTB Device Workflow API stopped")


app = FastAPI(
    title="RTB Device Workflow API",
    description="""
    API for RTB device inventory and school device applications.

    ## Workflow

    1. A school submits an application with a signed letter
    2. Staff review the application and set eligibility
    3. Staff assign inventory devices; each device gets an asset tag
    4. The school confirms receipt
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "X-API-Key",
        "X-User-Id",
        "X-User-Role",
        "X-School-Id",
        "X-User-Name",
    ],
)

register_exception_handlers(app)

app.include_router(applications_router)
app.include_router(inventory_router)
app.include_router(me_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "RTB Device Workflow API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health():
    """Global health check. Includes pool statistics when backed by PostgreSQL."""
    pool = get_db_pool()
    if pool is None:
        return {"status": "healthy", "store": "memory"}

    db = await check_database_health(pool)
    return {
        "status": "healthy" if db["healthy"] else "degraded",
        "store": "postgres",
        "database": db,
    }


# Development server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.rtb.workflow.app:app",
        host="0.0.0.0",
        port=get_settings().port,
        reload=True,
    )
