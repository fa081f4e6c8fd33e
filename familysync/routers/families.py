"""Families router.

Endpoints for creating, looking up and updating families and listing their
members.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from familysync.core.dependencies import get_store
from familysync.models import Family
from familysync.schemas.family import FamilyCreate, FamilyResponse, FamilyUpdate
from familysync.schemas.membership import MembershipResponse
from familysync.services.entity_store import EntityStore

router = APIRouter(prefix="/families", tags=["Families"])


async def _get_family_or_404(store: EntityStore, family_id: uuid.UUID) -> Family:
    family = await store.fetch_family(family_id)
    if family is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Family not found",
        )
    return family


@router.post("", response_model=FamilyResponse, status_code=status.HTTP_201_CREATED)
async def create_family(
    body: FamilyCreate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Create a family. A join code is generated when none is given."""
    code = body.code or await store.generate_unique_family_code()
    return await store.create_family(body.name, code, body.created_by_user_id)


@router.get("", response_model=list[FamilyResponse])
async def list_families(store: Annotated[EntityStore, Depends(get_store)]):
    return await store.fetch_all(Family)


@router.get("/lookup", response_model=FamilyResponse)
async def lookup_family(
    code: str,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Find a family by its join code."""
    family = await store.fetch_family_by_code(code)
    if family is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Family not found",
        )
    return family


@router.get("/{family_id}", response_model=FamilyResponse)
async def get_family(
    family_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    return await _get_family_or_404(store, family_id)


@router.put("/{family_id}", response_model=FamilyResponse)
async def update_family(
    family_id: uuid.UUID,
    body: FamilyUpdate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    family = await _get_family_or_404(store, family_id)
    update_data = body.model_dump(exclude_unset=True, exclude_none=True)
    return await store.update_family(family, **update_data)


@router.delete("/{family_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_family(
    family_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Delete a family together with all of its memberships."""
    family = await _get_family_or_404(store, family_id)
    await store.delete(family)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{family_id}/members", response_model=list[MembershipResponse])
async def list_family_members(
    family_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
    include_removed: bool = False,
):
    """List the memberships of a family, active ones only by default."""
    family = await _get_family_or_404(store, family_id)
    if include_removed:
        return await store.memberships_for_family(family)
    return await store.active_memberships(family)


@router.get("/{family_id}/parent-admin", response_model=MembershipResponse)
async def get_parent_admin(
    family_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    family = await _get_family_or_404(store, family_id)
    membership = await store.parent_admin(family)
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Family has no parent admin",
        )
    return membership
