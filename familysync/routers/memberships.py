"""Memberships router.

Joining a family, role changes and soft removal.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from familysync.core.dependencies import get_store
from familysync.models import Membership
from familysync.schemas.membership import (
    MembershipCreate,
    MembershipResponse,
    MembershipRoleUpdate,
)
from familysync.services.entity_store import EntityStore

router = APIRouter(prefix="/memberships", tags=["Memberships"])


async def _get_membership_or_404(store: EntityStore, membership_id: uuid.UUID) -> Membership:
    membership = await store.fetch_membership(membership_id)
    if membership is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Membership not found",
        )
    return membership


@router.post("", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def create_membership(
    body: MembershipCreate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Add a user to a family with the given role."""
    family = await store.fetch_family(body.family_id)
    if family is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Family not found",
        )
    user = await store.fetch_user_profile(body.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found",
        )
    return await store.create_membership(family, user, body.role)


@router.get("/{membership_id}", response_model=MembershipResponse)
async def get_membership(
    membership_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    return await _get_membership_or_404(store, membership_id)


@router.put("/{membership_id}/role", response_model=MembershipResponse)
async def update_membership_role(
    membership_id: uuid.UUID,
    body: MembershipRoleUpdate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    membership = await _get_membership_or_404(store, membership_id)
    return await store.update_membership_role(membership, body.role)


@router.post("/{membership_id}/remove", response_model=MembershipResponse)
async def remove_membership(
    membership_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Soft-remove a member; the record is kept with status 'removed'."""
    membership = await _get_membership_or_404(store, membership_id)
    return await store.remove_membership(membership)


@router.post("/{membership_id}/activate", response_model=MembershipResponse)
async def activate_membership(
    membership_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    membership = await _get_membership_or_404(store, membership_id)
    return await store.activate_membership(membership)


@router.delete("/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_membership(
    membership_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    membership = await _get_membership_or_404(store, membership_id)
    await store.delete(membership)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
