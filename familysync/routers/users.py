"""User profiles router."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from familysync.core.dependencies import get_store
from familysync.models import UserProfile
from familysync.schemas.membership import MembershipResponse
from familysync.schemas.user import UserProfileCreate, UserProfileResponse, UserProfileUpdate
from familysync.services.entity_store import EntityStore

router = APIRouter(prefix="/users", tags=["Users"])


async def _get_user_or_404(store: EntityStore, user_id: uuid.UUID) -> UserProfile:
    user = await store.fetch_user_profile(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found",
        )
    return user


@router.post("", response_model=UserProfileResponse, status_code=status.HTTP_201_CREATED)
async def create_user_profile(
    body: UserProfileCreate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    return await store.create_user_profile(
        body.display_name, body.apple_user_id_hash, body.avatar_url,
    )


@router.get("/lookup", response_model=UserProfileResponse)
async def lookup_user_profile(
    apple_user_id_hash: str,
    store: Annotated[EntityStore, Depends(get_store)],
):
    user = await store.fetch_user_profile_by_hash(apple_user_id_hash)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found",
        )
    return user


@router.get("/{user_id}", response_model=UserProfileResponse)
async def get_user_profile(
    user_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    return await _get_user_or_404(store, user_id)


@router.put("/{user_id}", response_model=UserProfileResponse)
async def update_user_profile(
    user_id: uuid.UUID,
    body: UserProfileUpdate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    user = await _get_user_or_404(store, user_id)
    return await store.update_user_profile(user, **body.model_dump(exclude_unset=True))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user_profile(
    user_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Delete a user profile. Its memberships stay behind without a user."""
    user = await _get_user_or_404(store, user_id)
    await store.delete(user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/memberships", response_model=list[MembershipResponse])
async def list_user_memberships(
    user_id: uuid.UUID,
    store: Annotated[EntityStore, Depends(get_store)],
):
    user = await _get_user_or_404(store, user_id)
    return await store.memberships_for_user(user)
