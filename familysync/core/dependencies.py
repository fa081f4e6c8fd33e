from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from familysync.database import get_db
from familysync.services.entity_store import EntityStore
from familysync.services.sync_engine import SyncEngine
from familysync.services.transport import RemoteTransport


async def get_store(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> EntityStore:
    """One EntityStore per request, bound to the request's session."""
    return EntityStore(db)


def get_transport(request: Request) -> RemoteTransport:
    return request.app.state.transport


def get_sync_engine(
    request: Request,
    store: Annotated[EntityStore, Depends(get_store)],
    transport: Annotated[RemoteTransport, Depends(get_transport)],
) -> SyncEngine:
    """Sync engine sharing the app-wide run state (status, last sync, run lock)."""
    return SyncEngine(store, transport, state=request.app.state.sync_run_state)
