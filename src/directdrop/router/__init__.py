"""
Upload routing.

A ``Route`` wraps a schema with middleware and lifecycle hooks; a ``Router``
holds named routes and serves the authorize/complete protocol.
"""

from directdrop.router.handler import GenericRequest, GenericResponse, UploadHandler
from directdrop.router.route import (
    LifecycleContext,
    MiddlewareContext,
    PathConfig,
    PathContext,
    Route,
)
from directdrop.router.router import Router

__all__ = [
    "GenericRequest",
    "GenericResponse",
    "LifecycleContext",
    "MiddlewareContext",
    "PathConfig",
    "PathContext",
    "Route",
    "Router",
    "UploadHandler",
]
