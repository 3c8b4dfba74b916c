# vigora/main.py
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from vigora.core.config import settings
from vigora.core.logging import setup_logging
from vigora.core.errors import register_error_handlers
from vigora.api.router import api_router
from vigora.db.session import ping_database
from vigora.services.scheduler import lifespan_scheduler

# Monitoring
import sentry_sdk
from prometheus_fastapi_instrumentator import Instrumentator

setup_logging()


def _validate_secrets() -> None:
    """Refuse short or empty JWT keys outside dev/test."""
    env = (settings.ENV or "").lower()
    if env in {"prod", "production", "staging", "preview"}:
        missing_or_weak = []
        if not settings.SECRET_KEY or len(settings.SECRET_KEY) < 32:
            missing_or_weak.append("SECRET_KEY")
        if not settings.REFRESH_SECRET_KEY or len(settings.REFRESH_SECRET_KEY) < 32:
            missing_or_weak.append("REFRESH_SECRET_KEY")
        if missing_or_weak:
            raise RuntimeError(
                f"Insecure config for {', '.join(missing_or_weak)} in ENV={settings.ENV}. "
                "Please set strong keys via environment variables."
            )


def create_app() -> FastAPI:
    _validate_secrets()

    # lifespan runs the APScheduler housekeeping job
    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan_scheduler,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Sentry (skipped when SENTRY_DSN is unset) ----
    sentry_dsn = settings.SENTRY_DSN or os.getenv("SENTRY_DSN")
    if sentry_dsn:
        sentry_sdk.init(
            dsn=sentry_dsn,
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
            environment=settings.SENTRY_ENV or settings.ENV,
        )

    # ---- Prometheus /metrics ----
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    register_error_handlers(app)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/", summary="Root")
    async def root():
        return {"app": settings.APP_NAME, "env": settings.ENV}

    @app.get("/healthz", tags=["ops"])
    async def healthz():
        return {"ok": True}

    @app.get("/readyz", tags=["ops"])
    async def readyz():
        try:
            await ping_database()
        except Exception:
            logger.exception("Readiness probe failed")
            return JSONResponse(status_code=503, content={"ready": False})
        return {"ready": True}

    logger.bind(env=settings.ENV).info("Application initialized")
    return app


# Uvicorn entry point
app = create_app()
