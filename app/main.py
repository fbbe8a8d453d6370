"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import health
from app.api.routes import router as api_router
from app.core.config import Settings, get_settings
from app.core.database import engine
from app.core.errors import register_exception_handlers
from app.middleware.protection import ProtectionMiddleware
from app.models import Base
from app.services.protection import (
    LocalProtectionService,
    ProtectionClient,
    ProtectionConfig,
    ProtectionPolicy,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def build_log_formatter() -> logging.Formatter:
    """Formatter with UTC timestamps, matching the trailing Z in LOG_DATE_FORMAT."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    formatter.converter = time.gmtime
    return formatter


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")
    yield


def create_app(
    settings: Settings | None = None,
    protection_client: ProtectionClient | None = None,
) -> FastAPI:
    """
    Build the application.

    The protection client and its policy are created once here and handed to the
    middleware; pass protection_client to substitute another implementation.
    """
    settings = settings or get_settings()
    handler = logging.StreamHandler()
    handler.setFormatter(build_log_formatter())
    logging.basicConfig(level=settings.LOG_LEVEL, handlers=[handler])

    app = FastAPI(
        title="Accounts API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if settings.PROTECTION_ENABLED:
        client = protection_client or LocalProtectionService(
            ProtectionConfig.from_settings(settings)
        )
        app.add_middleware(
            ProtectionMiddleware,
            client=client,
            policy=ProtectionPolicy.from_settings(settings),
            settings=settings,
        )

    # Added last so it is outermost and preflight requests skip protection.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.APP_ENV == "dev" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, prefix=settings.HEALTH_CHECK_PATH, tags=["health"])
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/")
    @app.get("/api")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {"message": "Welcome to the Accounts API"}

    return app


app = create_app()
