"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.clinic.config import settings
from src.clinic.container import ServiceContainer, build_services
from src.clinic.features.admin import router as admin_router
from src.clinic.features.users import router as users_router
from src.clinic.features.webhooks import router as webhooks_router
from src.clinic.services.rate_limiter import limiter

logger = logging.getLogger(__name__)


class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built container (tests); built from settings at startup when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle (startup and shutdown)."""
        if getattr(app.state, "services", None) is None:
            try:
                logger.info("Initializing services")
                app.state.services = await build_services(settings)
            except Exception as e:
                logger.error(
                    f"Failed to initialize services: {e}",
                    exc_info=True,
                    extra={"error_type": "service_init_failed"},
                )
                raise

        await app.state.services.start()

        yield

        try:
            await app.state.services.close()
            logger.info("Service cleanup completed")
        except Exception as e:
            logger.error(f"Error during service cleanup: {e}", exc_info=True)

    app = FastAPI(
        title="Clinic Identity API",
        description="Identity synchronization and role-based authorization",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    origins = settings.cors_origins.split(",")
    logger.info(f"Origins : {origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(users_router, prefix=settings.api_v1_prefix)
    app.include_router(admin_router, prefix=settings.api_v1_prefix)
    app.include_router(webhooks_router, prefix=settings.api_v1_prefix)

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check() -> HealthCheckResponse:
        """Health check endpoint."""
        return HealthCheckResponse(status="healthy")

    return app


app = create_app()
