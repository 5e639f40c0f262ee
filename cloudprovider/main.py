import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from cloudprovider.config import settings
from cloudprovider.core.exceptions import register_exception_handlers
from cloudprovider.core.logging import configure_logging
from cloudprovider.core.middleware import RequestIdMiddleware
from cloudprovider.db.base import Base
from cloudprovider.db.session import AsyncSessionLocal, engine

_start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global _start_time
    logger = logging.getLogger(__name__)

    logger.info(
        "Application starting",
        extra={
            "version": settings.app_version,
            "env": settings.env,
            "debug": settings.debug,
            "mock_cloud": settings.use_mock_cloud,
        },
    )

    if settings.use_mock_cloud:
        # Import registers the emulated backend's tables on Base.metadata
        import cloudprovider.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Emulated cloud tables ready")
    else:
        logger.info("Using remote API", extra={"api_url": settings.api_url})

    _start_time = time.monotonic()
    logger.info("Application ready", extra={"version": settings.app_version})

    yield

    logger.info("Application shutting down")
    await engine.dispose()
    logger.info("Database engine disposed")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Provider plugin for cloud servers. Creates, reads, updates and deletes "
            "servers and reconciles their storages, networks, IP addresses and ISO image."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    from cloudprovider.api.v1.router import router as v1_router

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health_check() -> JSONResponse:
        checks: dict[str, dict[str, str]] = {}
        if settings.use_mock_cloud:
            db_status = "healthy"
            try:
                async with AsyncSessionLocal() as session:
                    await session.execute(text("SELECT 1"))
            except Exception:
                db_status = "unhealthy"
            checks["emulated_cloud"] = {"status": db_status}
        else:
            has_credentials = bool(settings.api_user_uuid and settings.api_token.get_secret_value())
            checks["remote_api"] = {
                "status": "healthy" if has_credentials else "unhealthy",
                "url": settings.api_url,
            }

        overall = (
            "healthy" if all(c["status"] == "healthy" for c in checks.values()) else "unhealthy"
        )
        uptime = int(time.monotonic() - _start_time) if _start_time else 0

        return JSONResponse(
            status_code=200 if overall == "healthy" else 503,
            content={
                "status": overall,
                "version": settings.app_version,
                "env": settings.env,
                "backend": "mock" if settings.use_mock_cloud else "remote",
                "uptime_s": uptime,
                "checks": checks,
            },
        )

    return app


app = create_app()
