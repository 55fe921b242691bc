"""Direct-transfer endpoint for the local storage backend.

Signed URLs issued by ``LocalStorageBackend`` point here. Production setups
using GCS never route bytes through the application.
"""

import io
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse

from directdrop.api.v1.routes_upload import get_upload_handler
from directdrop.core.exceptions import AuthorizationError
from directdrop.storage.local import LocalStorageBackend

router = APIRouter(prefix="/storage", tags=["storage"])
logger = logging.getLogger(__name__)


def get_local_backend(request: Request) -> LocalStorageBackend:
    storage = get_upload_handler(request).router.storage
    if not isinstance(storage, LocalStorageBackend):
        raise HTTPException(status_code=404, detail="Local storage is not enabled")
    return storage


@router.put("/{key:path}")
async def put_object(key: str, request: Request) -> dict:
    """Accept a direct transfer against a signed URL."""
    backend = get_local_backend(request)
    content_type = request.headers.get("content-type", "application/octet-stream")

    try:
        backend.verify("PUT", key, content_type, request.query_params)
    except AuthorizationError as e:
        logger.warning(
            "Rejected direct transfer",
            extra={"object_name": key, "error": e.message},
        )
        raise HTTPException(status_code=403, detail=e.message)

    body = await request.body()
    try:
        size_bytes = backend.store(key, io.BytesIO(body))
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=e.message)

    return {"key": key, "size_bytes": size_bytes}


@router.get("/{key:path}")
async def get_object(key: str, request: Request) -> FileResponse:
    """Serve a stored object at its public URL."""
    backend = get_local_backend(request)
    if not backend.exists(key):
        raise HTTPException(status_code=404, detail="Object not found")
    return FileResponse(backend.base_path / key)
