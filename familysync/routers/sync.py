"""Sync router.

Trigger a push of all dirty records and report sync progress.
"""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends

from familysync.core.dependencies import get_sync_engine
from familysync.schemas.sync import SyncResultResponse, SyncStatusResponse
from familysync.services.sync_engine import SyncEngine

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(engine: Annotated[SyncEngine, Depends(get_sync_engine)]):
    """Status of the latest run plus the number of records waiting per type."""
    info = await engine.status_info()
    return SyncStatusResponse(
        status=info.status.value,
        last_sync_at=info.last_sync_at,
        last_error=info.last_error,
        pending=info.pending,
    )


@router.post("/run", response_model=SyncResultResponse)
async def run_sync(engine: Annotated[SyncEngine, Depends(get_sync_engine)]):
    """Push every record that needs sync."""
    result = await engine.push_pending()
    return SyncResultResponse.model_validate(asdict(result))


@router.post("/recover")
async def recover_partial_migration(engine: Annotated[SyncEngine, Depends(get_sync_engine)]):
    """Re-queue records left half-synced by an interrupted migration."""
    reports = await engine.recover_partial_migration()
    return {
        report.record_type: {
            "recovered": report.recovered,
            "already_migrated": report.already_migrated,
        }
        for report in reports
    }
