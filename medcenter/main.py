import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medcenter.api.routes import auth, doctors, reservations, slots
from medcenter.core.config import _ENV_FILE, settings
from medcenter.core.db import async_session_maker, init_db
from medcenter.services.expiry_service import run_sweep

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)


async def _startup_sweep() -> None:
    """Release holds that lapsed while the service was down."""
    try:
        async with async_session_maker() as session:
            try:
                await run_sweep(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except Exception as e:
        logger.exception("Startup reservation sweep failed: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Clinic timezone %s, reservation hold %d min, midday boundary %s",
        settings.app_timezone,
        settings.reservation_hold_minutes,
        settings.midday_boundary.strftime("%H:%M"),
    )
    if settings.env == "development":
        await init_db()
    # No periodic task: holds are also swept before every availability read
    await _startup_sweep()
    yield


app = FastAPI(
    title="Medical Center API",
    description="Backend for the medical center: doctors, slots, reservations",
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
    allow_headers=["Authorization", "Content-Type", "X-Refresh-Token", "X-Guest-Identifier"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(doctors.router, prefix="/api/v1")
app.include_router(slots.router, prefix="/api/v1")
app.include_router(reservations.router, prefix="/api/v1")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Refresh-Token, X-Guest-Identifier",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render unhandled errors as JSON 500 with CORS headers."""
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": {"error_type": "UNEXPECTED", "message": "Internal server error"}},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
