"""Upload routes: a schema bound to middleware, lifecycle hooks and key paths."""

from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from directdrop.models.upload import FileDescriptor
from directdrop.schema import Schema
from directdrop.storage.keys import generate_file_key, identity_from_metadata, join_key


@dataclass(frozen=True)
class MiddlewareContext:
    """Input of one middleware step.

    ``metadata`` is whatever the previous step returned.
    """

    request: Any
    file: FileDescriptor
    metadata: dict[str, Any]


@dataclass(frozen=True)
class LifecycleContext:
    """Input of ``on_start``, ``on_complete`` and ``on_error`` hooks."""

    file: FileDescriptor
    metadata: dict[str, Any]
    url: Optional[str] = None
    key: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class PathContext:
    """Input of a route's ``generate_key`` function."""

    file: FileDescriptor
    metadata: dict[str, Any]
    route_name: str
    global_prefix: str


Middleware = Callable[[MiddlewareContext], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]
LifecycleHook = Callable[[LifecycleContext], Union[None, Awaitable[None]]]
KeyGenerator = Callable[[PathContext], str]


@dataclass(frozen=True)
class PathConfig:
    """Route-level key layout nested under the global prefix.

    Final key: ``{global prefix}/{prefix}/{generated}/{suffix}``, unless
    ``generate_key`` is given, in which case it decides the whole key.
    ``prefix`` defaults to the route name.
    """

    prefix: Optional[str] = None
    suffix: Optional[str] = None
    generate_key: Optional[KeyGenerator] = None


@dataclass(frozen=True)
class Route:
    """A schema wrapped with an ordered middleware chain and lifecycle hooks.

    Every builder call returns a new Route; routes are never mutated.
    """

    schema: Schema
    middleware_chain: tuple[Middleware, ...] = ()
    start_hook: Optional[LifecycleHook] = None
    complete_hook: Optional[LifecycleHook] = None
    error_hook: Optional[LifecycleHook] = None
    path_config: PathConfig = field(default_factory=PathConfig)

    def middleware(self, step: Middleware) -> "Route":
        return replace(self, middleware_chain=self.middleware_chain + (step,))

    def on_start(self, hook: LifecycleHook) -> "Route":
        return replace(self, start_hook=hook)

    def on_complete(self, hook: LifecycleHook) -> "Route":
        return replace(self, complete_hook=hook)

    def on_error(self, hook: LifecycleHook) -> "Route":
        return replace(self, error_hook=hook)

    def paths(
        self,
        prefix: Optional[str] = None,
        suffix: Optional[str] = None,
        generate_key: Optional[KeyGenerator] = None,
    ) -> "Route":
        merged = replace(
            self.path_config,
            **{
                name: value
                for name, value in (
                    ("prefix", prefix),
                    ("suffix", suffix),
                    ("generate_key", generate_key),
                )
                if value is not None
            },
        )
        return replace(self, path_config=merged)


def build_object_key(
    route: Route,
    route_name: str,
    file: FileDescriptor,
    metadata: Mapping[str, Any],
    global_prefix: str,
    preserve_extension: bool = True,
) -> str:
    """Compose the object key for one authorized file."""
    paths = route.path_config
    if paths.generate_key is not None:
        return join_key(
            paths.generate_key(
                PathContext(
                    file=file,
                    metadata=dict(metadata),
                    route_name=route_name,
                    global_prefix=global_prefix,
                )
            )
        )

    generated = generate_file_key(
        original_name=file.name,
        user_id=identity_from_metadata(metadata),
        preserve_extension=preserve_extension,
    )
    return join_key(global_prefix, paths.prefix or route_name, generated, paths.suffix or "")
