from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from calsync.core.database import get_db
from calsync.schemas.base import ResponseBase

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/health", response_model=ResponseBase)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint, also pings the database."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {e}")
        return ResponseBase(success=False, message="Database unavailable")
    return ResponseBase(success=True, message="Service is healthy")
