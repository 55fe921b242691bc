"""Framework-neutral protocol handler.

Host adapters translate their native request into a ``GenericRequest`` and
the returned ``GenericResponse`` back into a native response.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import pydantic

from directdrop.core.exceptions import ConfigurationError, ProtocolError, RouteNotFoundError
from directdrop.models.upload import AuthorizeRequest, CompleteRequest
from directdrop.router.router import Router

logger = logging.getLogger(__name__)

ACTION_AUTHORIZE = "authorize"
ACTION_COMPLETE = "complete"
ACTION_ALIASES = {"presign": ACTION_AUTHORIZE}


@dataclass(frozen=True)
class GenericRequest:
    """Host-neutral request. ``body`` is decoded JSON, raw bytes or text."""

    method: str = "POST"
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class GenericResponse:
    status: int
    body: dict[str, Any]
    headers: Mapping[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})


def _error_response(status: int, message: str, code: str, **extra: Any) -> GenericResponse:
    return GenericResponse(status=status, body={"success": False, "error": message, "code": code, **extra})


def _decode_body(body: Any) -> Any:
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8") if body else ""
        except UnicodeDecodeError as e:
            raise ProtocolError("Request body is not valid UTF-8") from e
    if isinstance(body, str):
        if not body.strip():
            raise ProtocolError("Request body is required")
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Request body is not valid JSON: {e.msg}") from e
    return body


def _describe_validation_error(error: pydantic.ValidationError) -> str:
    problems = [
        f"{'.'.join(str(part) for part in problem['loc']) or 'body'}: {problem['msg']}"
        for problem in error.errors()
    ]
    return "Malformed request body: " + "; ".join(problems)


class UploadHandler:
    """Dispatches authorize/complete requests to a Router.

    Route name and action travel in the query string (``?route=&action=``).
    """

    def __init__(self, router: Router):
        self.router = router

    async def handle(self, request: GenericRequest) -> GenericResponse:
        method = request.method.upper()
        if method == "GET":
            return self.describe()
        if method != "POST":
            return GenericResponse(
                status=405,
                body={"success": False, "error": f"Method {method} not allowed", "code": "METHOD_NOT_ALLOWED"},
                headers={"Content-Type": "application/json", "Allow": "GET, POST"},
            )

        try:
            return await self._dispatch(request)
        except ProtocolError as e:
            return _error_response(400, e.message, e.code)
        except RouteNotFoundError as e:
            return _error_response(404, e.message, e.code)
        except ConfigurationError as e:
            logger.error("Upload handler configuration error", extra={"error": e.message})
            return _error_response(500, e.message, e.code)

    async def _dispatch(self, request: GenericRequest) -> GenericResponse:
        route_name = request.query.get("route")
        if not route_name:
            raise ProtocolError("Route parameter is required")

        action = (request.query.get("action") or ACTION_AUTHORIZE).lower()
        action = ACTION_ALIASES.get(action, action)
        if action not in (ACTION_AUTHORIZE, ACTION_COMPLETE):
            raise ProtocolError(f"Unknown action: {action}")

        self.router.get_route(route_name)
        body = _decode_body(request.body)

        model = AuthorizeRequest if action == ACTION_AUTHORIZE else CompleteRequest
        try:
            payload = model.model_validate(body)
        except pydantic.ValidationError as e:
            raise ProtocolError(_describe_validation_error(e)) from e

        if action == ACTION_AUTHORIZE:
            results = await self.router.authorize(
                route_name, request, payload.files, payload.metadata
            )
        else:
            results = await self.router.complete(route_name, request, payload.completions)

        return GenericResponse(
            status=200,
            body={
                "success": True,
                "results": [
                    result.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for result in results
                ],
            },
        )

    def describe(self) -> GenericResponse:
        """List registered routes for introspection."""
        return GenericResponse(
            status=200,
            body={
                "success": True,
                "routes": [
                    {"name": name, "type": self.router.get_route(name).schema.kind.value}
                    for name in self.router.route_names()
                ],
            },
        )
