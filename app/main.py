"""
Pulse Blog API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import sessionmaker

from . import models  # noqa: F401  registers tables on Base.metadata
from .config import Settings, get_settings
from .database import Base, build_engine
from .errors import PulseError
from .limiter import limiter
from .logging_config import api_logger
from .middleware import SecurityHeadersMiddleware, RequestLoggingMiddleware
from .responses import ApiException, api_exception_handler, pulse_error_handler
from .routes import (
    auth_router,
    scheduler_router,
    themes_router,
    agents_router,
    posts_router,
    health_router,
)
from .scheduler.service import GenerationService


def create_app(
    settings: Optional[Settings] = None,
    engine=None,
    adapter=None,
    **service_options,
) -> FastAPI:
    """
    Build the application. ``engine``, ``adapter`` and ``service_options``
    (rng, sleep, now_fn) are injection points for tests.
    """
    settings = settings or get_settings()
    engine = engine if engine is not None else build_engine(settings.database_url)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle - startup and shutdown"""
        # Create tables (use migrations for schema changes in production)
        Base.metadata.create_all(bind=engine)

        service = GenerationService(session_factory, settings, adapter=adapter, **service_options)
        app.state.generation_service = service
        await service.start()
        api_logger.info(
            "Application started",
            environment=settings.environment,
            scheduler=service.runner.running,
        )

        yield  # App is running

        await service.stop()
        api_logger.info("Application stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Scheduled AI blog generation and publishing",
        version="1.0.0",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory

    # Add rate limiter to app state
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(PulseError, pulse_error_handler)
    app.add_exception_handler(ApiException, api_exception_handler)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # Request logging middleware (only in debug mode)
    if settings.debug:
        app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
        ],
        max_age=3600,  # Cache preflight requests for 1 hour
    )

    app.include_router(auth_router)
    app.include_router(scheduler_router)
    app.include_router(themes_router)
    app.include_router(agents_router)
    app.include_router(posts_router)
    app.include_router(health_router)

    @app.get("/")
    def root():
        """Root endpoint points at the API docs."""
        return {
            "message": settings.app_name,
            "docs": "/api/docs" if settings.debug else "Disabled in production",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
