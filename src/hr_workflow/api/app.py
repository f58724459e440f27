"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hr_workflow.api.errors import register_exception_handlers
from hr_workflow.api.routes import (
    audit_router,
    entities_router,
    health_router,
    profiles_router,
    storage_router,
)
from hr_workflow.config import settings
from hr_workflow.database import database
from hr_workflow.logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    database.configure()
    yield
    await database.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level)

    app = FastAPI(
        title="HR Workflow API",
        description="Organization-scoped authorization and approval workflows",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(entities_router, prefix="/api/v1")
    app.include_router(profiles_router, prefix="/api/v1")
    app.include_router(audit_router, prefix="/api/v1")
    app.include_router(storage_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
