"""Health check endpoint for DirectDrop."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns:
        dict: Health status response with status, service, version and storage backend
    """
    settings = request.app.state.settings
    handler = getattr(request.app.state, "upload_handler", None)
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "storage_backend": handler.router.storage.get_backend_name() if handler else None,
    }
