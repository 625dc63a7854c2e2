"""Profile sync endpoints for identities issued upstream."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from helpinghands.api.deps import get_profile_service
from helpinghands.domain.events.models import UserProfile
from helpinghands.domain.events.profiles import ProfileService
from helpinghands.domain.events.schemas import ProfileResponse
from helpinghands.infra.identity import Identity, get_identity

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/sync-user", response_model=UserProfile)
async def sync_user_endpoint(
	identity: Identity = Depends(get_identity),
	service: ProfileService = Depends(get_profile_service),
) -> UserProfile:
	return await service.sync_user(identity)


@router.get("/profile/{user_id}", response_model=ProfileResponse)
async def profile_endpoint(
	user_id: str,
	service: ProfileService = Depends(get_profile_service),
) -> ProfileResponse:
	return await service.get_profile(user_id)


__all__ = ["router"]
