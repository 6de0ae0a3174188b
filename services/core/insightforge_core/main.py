"""InsightForge Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from insightforge_core.api.queue import RunQueue
from insightforge_core.api.routes import runs as runs_routes
from insightforge_core.api.routes import usage as usage_routes
from insightforge_core.config import Settings, get_settings
from insightforge_core.infra.db import Database
from insightforge_core.observability import configure_logging


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    run_queue: Optional[RunQueue] = None,
) -> FastAPI:
    """Build the API application.

    Collaborators not passed in are created from settings at startup and
    disposed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        # Startup
        app_settings = settings or get_settings()
        configure_logging(
            level=app_settings.log_level,
            json_format=app_settings.log_json,
            service_name="insightforge-core",
        )
        app.state.settings = app_settings
        app.state.database = database or Database.from_settings(app_settings)
        app.state.run_queue = run_queue or RunQueue(app_settings)
        yield
        # Shutdown
        if database is None:
            app.state.database.dispose()

    app = FastAPI(
        title="InsightForge Core API",
        description="Expert knowledge extraction runs",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Include API routers
    app.include_router(runs_routes.router)
    app.include_router(usage_routes.router)

    @app.get("/healthz")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"ok": True, "service": "insightforge-core"}

    return app


app = create_app()
