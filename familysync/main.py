import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familysync.config import settings
from familysync.database import get_db, init_models
from familysync.errors import (
    ConstraintViolation,
    InvalidData,
    MigrationError,
    SyncError,
    ValidationFailed,
)
from familysync.routers import families, memberships, sync, users
from familysync.services.entity_store import EntityStore
from familysync.services.sync_engine import SyncEngine, SyncRunState
from familysync.services.transport import HttpTransport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Periodic sync background task
# ---------------------------------------------------------------------------
async def _sync_loop(app: FastAPI) -> None:
    """Push pending records every SYNC_INTERVAL_SECONDS.

    A tick is skipped when nothing is queued or a run started through the
    API is still going.
    """
    from familysync.database import async_session

    while True:
        await asyncio.sleep(settings.SYNC_INTERVAL_SECONDS)
        try:
            async with async_session() as db:
                engine = SyncEngine(
                    EntityStore(db), app.state.transport, state=app.state.sync_run_state,
                )
                result = await engine.push_if_pending()
                if result is not None:
                    logger.info(
                        "Periodic sync: %d pushed, %d conflicts, %d failed",
                        result.pushed, result.conflicts, result.failed,
                    )
        except Exception:
            logger.exception("Periodic sync error")


# ---------------------------------------------------------------------------
# Lifespan context manager
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: runs on startup and shutdown."""
    await init_models()
    logger.info("FamilySync API started")
    sync_task = None
    if settings.SYNC_INTERVAL_SECONDS > 0:
        sync_task = asyncio.create_task(_sync_loop(app))
    yield
    if sync_task is not None:
        sync_task.cancel()
    await app.state.transport.close()
    logger.info("FamilySync API shutting down")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

app.state.transport = HttpTransport()
app.state.sync_run_state = SyncRunState()


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------
@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "errors": exc.errors},
    )


@app.exception_handler(InvalidData)
async def invalid_data_handler(request: Request, exc: InvalidData):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(MigrationError)
async def migration_error_handler(request: Request, exc: MigrationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ConstraintViolation)
async def constraint_violation_handler(request: Request, exc: ConstraintViolation):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    logger.warning("Sync error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------
@app.get("/health", tags=["health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check with DB connectivity verification."""
    checks: dict[str, str] = {"db": "ok"}

    try:
        await db.execute(select(1))
    except Exception:
        logger.exception("Health check: database unreachable")
        checks["db"] = "error"

    degraded = any(v == "error" for v in checks.values())
    return {"status": "degraded" if degraded else "ok", "app": settings.APP_NAME, **checks}


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(families.router, prefix=settings.API_V1_PREFIX)
app.include_router(users.router, prefix=settings.API_V1_PREFIX)
app.include_router(memberships.router, prefix=settings.API_V1_PREFIX)
app.include_router(sync.router, prefix=settings.API_V1_PREFIX)
