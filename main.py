from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_users import exceptions as fau_exceptions
import logging

from calsync.core.config import settings
from calsync.core.database import init_models
from calsync.core.exceptions import (
    CalApiError,
    CalCredentialError,
    CalRateLimitError,
    CalRefreshFailed,
    CalSyncError,
    CalTransientError,
    CalValidationError,
    IntegrationStateError,
    InvalidTimeSlot,
    NotFoundError,
    ReconcileError,
)
from calsync.routers.api import api_router
from calsync.utils.httpx import close_http_client
from calsync.utils.log import setup_logging

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()

    # Initialize database
    await init_models()
    logger.info(f"{settings.APP_NAME} started")

    yield

    await close_http_client()

app = FastAPI(
    title=settings.APP_NAME,
    description="Cal.com calendar integration sync for coaches",
    version="0.1.0",
    lifespan=lifespan
)

def _error_response(status_code: int, exc: CalSyncError) -> JSONResponse:
    content = {"code": exc.code, "detail": exc.message}
    if exc.detail is not None:
        content["provider_error"] = exc.detail
    return JSONResponse(status_code=status_code, content=content)

@app.exception_handler(CalCredentialError)
async def reconnect_exception_handler(request: Request, exc: CalCredentialError):
    return JSONResponse(
        status_code=401,
        content={"code": "RECONNECT_CALENDAR", "detail": exc.message},
    )

@app.exception_handler(CalRefreshFailed)
async def refresh_failed_exception_handler(request: Request, exc: CalRefreshFailed):
    return JSONResponse(status_code=401, content={"code": exc.code, "detail": exc.message})

@app.exception_handler(CalValidationError)
async def cal_validation_exception_handler(request: Request, exc: CalValidationError):
    return _error_response(422, exc)

@app.exception_handler(CalRateLimitError)
async def rate_limit_exception_handler(request: Request, exc: CalRateLimitError):
    return _error_response(429, exc)

@app.exception_handler(CalTransientError)
async def transient_exception_handler(request: Request, exc: CalTransientError):
    return _error_response(502, exc)

@app.exception_handler(CalApiError)
async def cal_api_exception_handler(request: Request, exc: CalApiError):
    return _error_response(502, exc)

@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError):
    return _error_response(404, exc)

@app.exception_handler(IntegrationStateError)
async def integration_state_exception_handler(request: Request, exc: IntegrationStateError):
    return _error_response(409, exc)

@app.exception_handler(InvalidTimeSlot)
async def invalid_time_slot_exception_handler(request: Request, exc: InvalidTimeSlot):
    return _error_response(422, exc)

@app.exception_handler(ReconcileError)
async def reconcile_exception_handler(request: Request, exc: ReconcileError):
    return _error_response(502, exc)

# Add exception handler for inactive users
@app.exception_handler(fau_exceptions.UserInactive)
async def user_inactive_exception_handler(request: Request, exc: fau_exceptions.UserInactive):
    return JSONResponse(
        status_code=400,
        content={"detail": "Your account has been deactivated. Please contact support for assistance."}
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

@app.get("/")
async def root():
    return {"message": f"Welcome to the {settings.APP_NAME} API"}

import uvicorn

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
