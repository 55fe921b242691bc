"""Upload protocol API routes."""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from directdrop.router.handler import GenericRequest, UploadHandler

router = APIRouter(prefix="/api", tags=["upload"])
logger = logging.getLogger(__name__)


def get_upload_handler(request: Request) -> UploadHandler:
    """Return the handler registered on the application."""
    handler = getattr(request.app.state, "upload_handler", None)
    if handler is None:
        logger.error("Upload handler not configured")
        raise HTTPException(status_code=503, detail="Upload routes not configured")
    return handler


@router.api_route("/upload", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def upload_protocol(request: Request) -> JSONResponse:
    """Serve the authorize/complete protocol.

    ``GET`` lists the registered routes. ``POST ?route=<name>&action=authorize``
    issues signed URLs, ``POST ?route=<name>&action=complete`` confirms
    finished transfers.
    """
    handler = get_upload_handler(request)

    generic = GenericRequest(
        method=request.method,
        headers=dict(request.headers),
        query=dict(request.query_params),
        body=await request.body() if request.method == "POST" else None,
    )
    response = await handler.handle(generic)

    headers = {k: v for k, v in response.headers.items() if k.lower() != "content-type"}
    return JSONResponse(status_code=response.status, content=response.body, headers=headers)
