from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.database import get_db
from calsync.models import User
from calsync.routers.auth import current_active_user
from calsync.schemas.coach import ProfileCompletionResponse
from calsync.services.coach_profile import get_profile_completion

router = APIRouter()

@router.get("/profile/completion", response_model=ProfileCompletionResponse)
async def profile_completion(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_profile_completion(db, user.id)
