import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app import models  # noqa: F401 - register tables
from app.api.routes import appointments, availability, schedules
from app.core.config import settings, _ENV_FILE
from app.core.db import init_db
from app.core.exceptions import (
    AlreadyExists,
    InvalidInterval,
    InvalidRange,
    InvalidScheduleBlock,
    InvalidStatus,
    NotFound,
    SchedulingError,
    StoreUnavailable,
)

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Scheduling: reference timezone %s, default slot %d min",
        settings.reference_timezone,
        settings.default_slot_duration_minutes,
    )
    if settings.env == "development":
        await init_db()
    yield


app = FastAPI(
    title="Doctor Scheduling API",
    description="Doctor availability and appointment booking",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(availability.router, prefix="/api/v1")
app.include_router(schedules.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")

_ERROR_STATUS: list[tuple[type[SchedulingError], int]] = [
    (InvalidRange, 400),
    (InvalidInterval, 400),
    (InvalidScheduleBlock, 400),
    (InvalidStatus, 400),
    (NotFound, 404),
    (AlreadyExists, 409),
    (StoreUnavailable, 503),
]


def _cors_headers(origin: str | None) -> dict[str, str]:
    """CORS headers for error responses, so browsers can read their bodies."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, StoreUnavailable):
        headers["Retry-After"] = "1"
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"{type(exc).__name__}: {str(exc)}"},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
