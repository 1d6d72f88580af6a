from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.exceptions import IntegrationNotFound, IntegrationStateError
from calsync.models import CalendarIntegration


async def get_active_integration(db: AsyncSession, user_id, require_managed_user: bool = False) -> CalendarIntegration:
    """Load the user's active Cal.com integration or raise ``IntegrationNotFound``."""
    result = await db.execute(
        select(CalendarIntegration).where(
            CalendarIntegration.user_id == user_id,
            CalendarIntegration.provider == "CAL",
            CalendarIntegration.is_active.is_(True),
        )
    )
    integration = result.scalar_one_or_none()
    if not integration:
        raise IntegrationNotFound(f"No active Cal.com integration for user {user_id}")
    if require_managed_user and (not integration.cal_managed_user_id or not integration.cal_username):
        raise IntegrationStateError(
            "Cal.com integration is missing its managed user id or username",
            detail={"user_id": str(user_id)},
        )
    return integration
