"""Main application entrypoint for DirectDrop."""

from collections.abc import Mapping
from typing import Optional

from fastapi import FastAPI

from directdrop.api.middleware import HTTPErrorLoggingMiddleware
from directdrop.api.v1 import routes_health, routes_storage, routes_upload
from directdrop.core.config import Settings, get_settings
from directdrop.core.logging import setup_logging
from directdrop.router.handler import UploadHandler
from directdrop.router.route import Route
from directdrop.router.router import Router
from directdrop.storage.base import StorageBackend


def create_app(
    routes: Optional[Mapping[str, Route]] = None,
    settings: Optional[Settings] = None,
    storage: Optional[StorageBackend] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        routes: Upload routes to serve, keyed by name
        settings: Settings to use instead of the environment
        storage: Storage backend to use instead of the configured one

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    settings = settings or get_settings()

    # Initialize logging first
    setup_logging(settings)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )
    app.state.settings = settings
    app.state.upload_handler = UploadHandler(
        Router(routes or {}, settings.to_upload_config(), storage=storage)
    )

    app.add_middleware(HTTPErrorLoggingMiddleware)

    # Register routers
    app.include_router(routes_health.router, tags=["health"])
    app.include_router(routes_upload.router)
    app.include_router(routes_storage.router)

    return app


# Export app instance for ASGI servers
app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
