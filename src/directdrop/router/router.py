"""Upload router: authorize and complete batches against named routes.

Both batch operations have partial-failure semantics. A file that fails
validation, middleware, signing or a lifecycle hook gets an inline error
result; its siblings are processed normally. Only a ConfigurationError
aborts the whole call.
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from directdrop.core.config import UploadConfig
from directdrop.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DirectDropError,
    HookError,
    RouteNotFoundError,
    TransferError,
    ValidationError,
)
from directdrop.core.logging import route_name_context
from directdrop.models.upload import (
    AuthorizeResult,
    CompleteResult,
    CompletionEntry,
    FileDescriptor,
)
from directdrop.router.route import (
    LifecycleContext,
    LifecycleHook,
    MiddlewareContext,
    Route,
    build_object_key,
)
from directdrop.schema import Kind, Schema, ValidationContext, ValidationResult
from directdrop.storage.authorization import AuthorizationGenerator
from directdrop.storage.base import StorageBackend
from directdrop.storage.factory import get_storage_backend

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Router:
    """Registry of named upload routes bound to one storage configuration."""

    def __init__(
        self,
        routes: Mapping[str, Route],
        config: UploadConfig,
        storage: Optional[StorageBackend] = None,
        generator: Optional[AuthorizationGenerator] = None,
    ):
        for name, route in routes.items():
            if not isinstance(name, str) or not name:
                raise ValueError(f"Route names must be non-empty strings, got {name!r}")
            if not isinstance(route, Route):
                raise TypeError(
                    f"Route {name!r} must be a Route; wrap schemas explicitly with Route(schema)"
                )
        self._routes: dict[str, Route] = dict(routes)
        self.config = config
        self.storage = storage or get_storage_backend(config)
        self.generator = generator or AuthorizationGenerator(self.storage, config)

    def route_names(self) -> list[str]:
        return list(self._routes)

    def get_route(self, route_name: str) -> Route:
        """Look up a route.

        Raises:
            RouteNotFoundError: If no route is registered under ``route_name``
        """
        try:
            return self._routes[route_name]
        except KeyError:
            raise RouteNotFoundError(route_name) from None

    # ------------------------------------------------------------------
    # Authorize
    # ------------------------------------------------------------------

    async def authorize(
        self,
        route_name: str,
        request: Any,
        files: Sequence[FileDescriptor],
        client_metadata: Optional[Mapping[str, Any]] = None,
    ) -> list[AuthorizeResult]:
        """Validate files, run middleware and issue one grant per file.

        Args:
            route_name: Registered route to authorize against
            request: Host request handed to middleware
            files: File descriptors, metadata only
            client_metadata: Untrusted client metadata seeding the middleware fold

        Returns:
            One result per file, in input order

        Raises:
            RouteNotFoundError: Unknown route
            ConfigurationError: Storage is not configured
        """
        route = self.get_route(route_name)
        token = route_name_context.set(route_name)
        try:
            validations = await self._validate_batch(route.schema, files)
            results = []
            for file, validation in zip(files, validations):
                results.append(
                    await self._authorize_one(
                        route_name, route, request, file, validation, client_metadata
                    )
                )

            logger.info(
                "Authorize batch processed",
                extra={
                    "route": route_name,
                    "file_count": len(files),
                    "failed_count": sum(1 for r in results if not r.success),
                },
            )
            return results
        finally:
            route_name_context.reset(token)

    async def _authorize_one(
        self,
        route_name: str,
        route: Route,
        request: Any,
        file: FileDescriptor,
        validation: ValidationResult,
        client_metadata: Optional[Mapping[str, Any]],
    ) -> AuthorizeResult:
        metadata: dict[str, Any] = dict(client_metadata or {})
        try:
            if not validation.success:
                issue = validation.error
                raise ValidationError(issue.message, code=issue.code, path=list(issue.path))

            metadata = await self._run_middleware(route, request, file, metadata)

            if route.start_hook is not None:
                await self._run_strict_hook(
                    route.start_hook, LifecycleContext(file=file, metadata=metadata), "on_start"
                )

            key = build_object_key(
                route,
                route_name,
                file,
                metadata,
                global_prefix=self.config.upload_prefix,
                preserve_extension=self.config.preserve_extension,
            )
            grant = await self.generator.issue(key, file.mime_type, file.size, metadata)

            return AuthorizeResult(
                success=True,
                file=file,
                signed_url=grant.signed_url,
                object_key=grant.object_key,
                expires_at=grant.expires_at,
                metadata=grant.metadata,
            )
        except ConfigurationError as e:
            logger.error(
                "Storage configuration error during authorize",
                extra={"route": route_name, "file_name": file.name, "error": e.message},
            )
            await self._run_error_hook(route, file, metadata, e)
            raise
        except DirectDropError as e:
            logger.warning(
                "File authorization rejected",
                extra={
                    "route": route_name,
                    "file_name": file.name,
                    "code": e.code,
                    "error": e.message,
                },
            )
            await self._run_error_hook(route, file, metadata, e)
            return AuthorizeResult(success=False, file=file, error=e.message, code=e.code)
        except Exception as e:
            logger.error(
                "Unexpected error during authorize",
                extra={"route": route_name, "file_name": file.name, "error": str(e)},
                exc_info=True,
            )
            await self._run_error_hook(route, file, metadata, e)
            return AuthorizeResult(
                success=False, file=file, error=str(e) or "Authorization failed", code="UPLOAD_FAILED"
            )

    async def _run_middleware(
        self, route: Route, request: Any, file: FileDescriptor, metadata: dict[str, Any]
    ) -> dict[str, Any]:
        """Left fold: each step receives the metadata returned by the previous one."""
        for step in route.middleware_chain:
            try:
                returned = await _resolve(
                    step(MiddlewareContext(request=request, file=file, metadata=metadata))
                )
            except DirectDropError:
                raise
            except Exception as e:
                raise AuthorizationError(str(e) or "Middleware rejected the upload") from e
            metadata = dict(returned) if returned is not None else {}
        return metadata

    # ------------------------------------------------------------------
    # Complete
    # ------------------------------------------------------------------

    async def complete(
        self,
        route_name: str,
        request: Any,
        completions: Sequence[CompletionEntry],
    ) -> list[CompleteResult]:
        """Confirm finished direct transfers and fire ``on_complete`` hooks.

        Returns:
            One result per completion, in input order

        Raises:
            RouteNotFoundError: Unknown route
            ConfigurationError: Storage is not configured
        """
        route = self.get_route(route_name)
        token = route_name_context.set(route_name)
        try:
            results = [
                await self._complete_one(route_name, route, entry) for entry in completions
            ]
            logger.info(
                "Complete batch processed",
                extra={
                    "route": route_name,
                    "file_count": len(completions),
                    "failed_count": sum(1 for r in results if not r.success),
                },
            )
            return results
        finally:
            route_name_context.reset(token)

    async def _complete_one(
        self, route_name: str, route: Route, entry: CompletionEntry
    ) -> CompleteResult:
        key = entry.object_key
        metadata = dict(entry.metadata or {})
        try:
            if self.config.verify_on_complete:
                found = await asyncio.to_thread(self.storage.exists, key)
                if not found:
                    raise TransferError(
                        f"Object not found in storage: {key}", code="OBJECT_NOT_FOUND"
                    )

            url = self.storage.public_url(key)
            download_url = await asyncio.to_thread(
                self.storage.sign_download, key, self.config.download_url_expires_seconds
            )

            if route.complete_hook is not None:
                await self._run_strict_hook(
                    route.complete_hook,
                    LifecycleContext(file=entry.file, metadata=metadata, url=url, key=key),
                    "on_complete",
                )

            return CompleteResult(
                success=True,
                object_key=key,
                url=url,
                download_url=download_url,
                file=entry.file,
            )
        except ConfigurationError as e:
            logger.error(
                "Storage configuration error during completion",
                extra={"route": route_name, "object_name": key, "error": e.message},
            )
            await self._run_error_hook(route, entry.file, metadata, e, key=key)
            raise
        except DirectDropError as e:
            logger.warning(
                "Upload completion failed",
                extra={"route": route_name, "object_name": key, "code": e.code, "error": e.message},
            )
            await self._run_error_hook(route, entry.file, metadata, e, key=key)
            return CompleteResult(
                success=False, object_key=key, file=entry.file, error=e.message, code=e.code
            )
        except Exception as e:
            logger.error(
                "Unexpected error during completion",
                extra={"route": route_name, "object_name": key, "error": str(e)},
                exc_info=True,
            )
            await self._run_error_hook(route, entry.file, metadata, e, key=key)
            return CompleteResult(
                success=False,
                object_key=key,
                file=entry.file,
                error=str(e) or "Upload completion failed",
                code="UPLOAD_FAILED",
            )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _run_strict_hook(
        self, hook: LifecycleHook, context: LifecycleContext, hook_name: str
    ) -> None:
        try:
            await _resolve(hook(context))
        except DirectDropError:
            raise
        except Exception as e:
            logger.error(
                f"Lifecycle hook {hook_name} failed",
                extra={"file_name": context.file.name, "error": str(e)},
                exc_info=True,
            )
            raise HookError(f"{hook_name} hook failed: {e}") from e

    async def _run_error_hook(
        self,
        route: Route,
        file: FileDescriptor,
        metadata: dict[str, Any],
        error: BaseException,
        key: Optional[str] = None,
    ) -> None:
        if route.error_hook is None:
            return
        try:
            await _resolve(
                route.error_hook(
                    LifecycleContext(file=file, metadata=metadata, key=key, error=error)
                )
            )
        except Exception as e:
            logger.error(
                "Lifecycle hook on_error failed",
                extra={"file_name": file.name, "error": str(e)},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Batch validation
    # ------------------------------------------------------------------

    async def _validate_batch(
        self, schema: Schema, files: Sequence[FileDescriptor]
    ) -> list[ValidationResult]:
        """Validate every file individually against the route schema.

        Count bounds and array/object refinements describe the batch as a
        whole; when they fail, every file in the batch fails with them.
        """
        if schema.kind is Kind.OBJECT:
            return await self._validate_fields(schema, files)

        if schema.kind is Kind.ARRAY:
            group = await self._check_group(schema, files, ValidationContext(field_name="files"))
            if not group.success:
                return [group] * len(files)

        per_file = schema.per_file()
        results = []
        for index, file in enumerate(files):
            result = await per_file.validate(file, ValidationContext(field_name=file.name))
            if not result.success and schema.kind is Kind.ARRAY:
                result = ValidationResult(success=False, error=result.error.prefixed(f"[{index}]"))
            results.append(result)
        return results

    async def _validate_fields(
        self, schema: Schema, files: Sequence[FileDescriptor]
    ) -> list[ValidationResult]:
        grouped: dict[str, list[FileDescriptor]] = {}
        for file in files:
            if file.field in schema.shape:
                grouped.setdefault(file.field, []).append(file)

        all_files = {
            name: group if schema.shape[name].kind is Kind.ARRAY else group[0]
            for name, group in grouped.items()
        }

        failed_groups: dict[str, ValidationResult] = {}
        for name, group in grouped.items():
            field_schema = schema.shape[name]
            if field_schema.kind is Kind.ARRAY:
                checked = await self._check_group(
                    field_schema, group, ValidationContext(field_name=name, all_files=all_files)
                )
            elif len(group) > 1:
                checked = ValidationResult.fail(
                    "ARRAY_TOO_LONG", f"Field {name} accepts a single file"
                )
            else:
                checked = ValidationResult.ok()
            if not checked.success:
                failed_groups[name] = ValidationResult(
                    success=False, error=checked.error.prefixed(name)
                )

        overall = await schema.apply_refinements(
            all_files, ValidationContext(field_name="files", all_files=all_files)
        )

        results = []
        for file in files:
            if not overall.success:
                results.append(overall)
                continue
            if file.field not in schema.shape:
                results.append(
                    ValidationResult.fail(
                        "UNKNOWN_FIELD",
                        f"File field {file.field!r} is not declared by this route",
                        [file.field or ""],
                    )
                )
                continue
            if file.field in failed_groups:
                results.append(failed_groups[file.field])
                continue
            result = await schema.shape[file.field].per_file().validate(
                file, ValidationContext(field_name=file.field, all_files=all_files)
            )
            if not result.success:
                result = ValidationResult(success=False, error=result.error.prefixed(file.field))
            results.append(result)
        return results

    @staticmethod
    async def _check_group(
        schema: Schema, group: Sequence[FileDescriptor], context: ValidationContext
    ) -> ValidationResult:
        counted = schema.check_count(len(group))
        if not counted.success:
            return counted
        return await schema.apply_refinements(list(group), context)
