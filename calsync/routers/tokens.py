from fastapi import APIRouter, Depends
import logging

from calsync.models import User
from calsync.routers.auth import current_active_user
from calsync.schemas.base import ResponseBase
from calsync.schemas.cal_api import TokenRefreshRequest, TokenStatusResponse
from calsync.services.cal_tokens import CalTokenService, get_token_service

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/refresh", response_model=ResponseBase)
async def refresh_token(
    request: TokenRefreshRequest = TokenRefreshRequest(),
    user: User = Depends(current_active_user),
    token_service: CalTokenService = Depends(get_token_service),
):
    """Make sure the user's Cal.com token is usable, refreshing it if needed."""
    await token_service.ensure_valid_token(user.id, force_refresh=request.force)
    return ResponseBase(success=True, message="Cal.com token is valid")

@router.get("/status", response_model=TokenStatusResponse)
async def token_status(
    user: User = Depends(current_active_user),
    token_service: CalTokenService = Depends(get_token_service),
):
    return TokenStatusResponse(token=await token_service.get_token_info(user.id))
