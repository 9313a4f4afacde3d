"""Search profile endpoints"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from farmaprice.api.deps import get_user_id
from farmaprice.core.database import get_db
from farmaprice.schemas.profile import SearchProfileListResponse, SearchProfileResponse
from farmaprice.services.profile_service import ProfileNotFound, activate_profile, list_profiles

router = APIRouter()


@router.get("", response_model=SearchProfileListResponse)
async def get_profiles(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's search profiles."""
    profiles = await list_profiles(db, user_id)
    return SearchProfileListResponse(
        profiles=[SearchProfileResponse.model_validate(p) for p in profiles],
        count=len(profiles),
    )


@router.post("/{profile_id}/activate", response_model=SearchProfileResponse)
async def activate(
    profile_id: int,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Make this profile the only active one."""
    try:
        profile = await activate_profile(db, user_id, profile_id)
    except ProfileNotFound:
        raise HTTPException(status_code=404, detail="Profile not found")
    return SearchProfileResponse.model_validate(profile)
