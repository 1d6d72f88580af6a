from fastapi import APIRouter
from calsync.core.config import settings
from calsync.routers import (
    auth,
    health,
    tokens,
    calendars,
    event_types,
    webhooks,
    availability,
    coach,
)

api_router = APIRouter(prefix=settings.API_V1_STR)

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(health.router, tags=["health"])
api_router.include_router(tokens.router, prefix="/cal/tokens", tags=["cal_tokens"])
api_router.include_router(calendars.router, prefix="/cal/calendars", tags=["cal_calendars"])
api_router.include_router(event_types.router, prefix="/cal/event-types", tags=["cal_event_types"])
api_router.include_router(webhooks.router, prefix="/cal/webhooks", tags=["cal_webhooks"])
api_router.include_router(availability.router, prefix="/cal/availability", tags=["cal_availability"])
api_router.include_router(coach.router, prefix="/coach", tags=["coach"])
