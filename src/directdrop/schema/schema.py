"""Composable validators for file-like values.

A ``Schema`` is an immutable value. Every chain call returns a new instance,
so schemas can be shared between routes and concurrent requests. The four
kinds (file, image, array, object) are variants of one dataclass dispatched
through a single validator.
"""

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from directdrop.schema.sizes import format_size, parse_size

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
    "svg": "image/svg+xml",
}


class Kind(str, Enum):
    """Schema variant."""

    FILE = "file"
    IMAGE = "image"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class ValidationIssue:
    """Describes why a value was rejected."""

    code: str
    message: str
    path: tuple[str, ...] = ()

    def prefixed(self, segment: str) -> "ValidationIssue":
        return replace(self, path=(segment, *self.path))


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``Schema.validate``."""

    success: bool
    data: Any = None
    error: Optional[ValidationIssue] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ValidationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, path: Sequence[str] = ()) -> "ValidationResult":
        return cls(success=False, error=ValidationIssue(code, message, tuple(path)))


@dataclass(frozen=True)
class ValidationContext:
    """Context handed to refinements.

    ``all_files`` exposes every sibling field of an object schema so that a
    refinement can express cross-field rules.
    """

    file: Any = None
    field_name: str = "unknown"
    all_files: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class TransformContext:
    """Context handed to transforms."""

    file: Any
    original_data: Any
    metadata: Optional[ValidationContext] = None


Refinement = Callable[[ValidationContext], Union[bool, Awaitable[bool]]]
Transform = Callable[[TransformContext], Any]


@dataclass(frozen=True)
class FileConstraints:
    max_size: Optional[Union[int, str]] = None
    min_size: Optional[Union[int, str]] = None
    allowed_types: tuple[str, ...] = ()
    allowed_extensions: tuple[str, ...] = ()


@dataclass(frozen=True)
class ArrayConstraints:
    min: Optional[int] = None
    max: Optional[int] = None
    length: Optional[int] = None


@dataclass(frozen=True)
class FileInfo:
    """Normalised view of any file-like input."""

    name: str
    size: int
    mime_type: str


def describe_file(value: Any) -> Optional[FileInfo]:
    """Extract name, size and MIME type from a file-like value.

    Accepts mappings and objects exposing ``name`` (or ``filename``), ``size``
    and one of ``mime_type``, ``type``, ``mimeType`` or ``content_type``.

    Returns:
        FileInfo, or None if the value does not look like a file
    """
    if isinstance(value, Mapping):
        getter = value.get
    else:
        def getter(key: str, default: Any = None) -> Any:
            return getattr(value, key, default)

    name = getter("name") or getter("filename")
    size = getter("size")
    mime_type = None
    for key in ("mime_type", "type", "mimeType", "content_type"):
        candidate = getter(key)
        if isinstance(candidate, str):
            mime_type = candidate
            break

    if not isinstance(name, str) or isinstance(size, bool) or not isinstance(size, int):
        return None
    return FileInfo(name=name, size=size, mime_type=mime_type or "")


def _type_matches(mime_type: str, allowed: str) -> bool:
    if allowed.endswith("/*"):
        return mime_type.startswith(allowed[:-1])
    return mime_type == allowed


def _extension_matches(name: str, extension: str) -> bool:
    return name.lower().endswith("." + extension.lower().lstrip("."))


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class Schema:
    """Immutable file validation schema.

    Build instances with :func:`file`, :func:`image` and :func:`object` rather
    than calling the constructor directly.
    """

    kind: Kind
    constraints: FileConstraints = FileConstraints()
    element: Optional["Schema"] = None
    array_constraints: ArrayConstraints = ArrayConstraints()
    shape: Optional[Mapping[str, "Schema"]] = None
    refinements: tuple[tuple[Refinement, str], ...] = ()
    transforms: tuple[Transform, ...] = ()
    is_optional: bool = False

    # ------------------------------------------------------------------
    # Chain methods
    # ------------------------------------------------------------------

    def _require(self, *kinds: Kind, method: str) -> None:
        if self.kind not in kinds:
            raise TypeError(f"{method}() is not available on {self.kind.value} schemas")

    def _with_constraints(self, **changes: Any) -> "Schema":
        return replace(self, constraints=replace(self.constraints, **changes))

    def max_size(self, size: Union[int, str]) -> "Schema":
        self._require(Kind.FILE, Kind.IMAGE, method="max_size")
        parse_size(size)
        return self._with_constraints(max_size=size)

    def min_size(self, size: Union[int, str]) -> "Schema":
        self._require(Kind.FILE, Kind.IMAGE, method="min_size")
        parse_size(size)
        return self._with_constraints(min_size=size)

    def types(self, allowed_types: Sequence[str]) -> "Schema":
        self._require(Kind.FILE, Kind.IMAGE, method="types")
        return self._with_constraints(allowed_types=tuple(allowed_types))

    def extensions(self, allowed_extensions: Sequence[str]) -> "Schema":
        self._require(Kind.FILE, Kind.IMAGE, method="extensions")
        return self._with_constraints(allowed_extensions=tuple(allowed_extensions))

    def formats(self, formats: Sequence[str]) -> "Schema":
        """Restrict an image schema to short format names such as "png"."""
        self._require(Kind.IMAGE, method="formats")
        mime_types = tuple(
            IMAGE_FORMATS.get(fmt.lower(), f"image/{fmt.lower()}") for fmt in formats
        )
        return self._with_constraints(allowed_types=mime_types)

    def array(
        self,
        min: Optional[int] = None,
        max: Optional[int] = None,
        length: Optional[int] = None,
    ) -> "Schema":
        self._require(Kind.FILE, Kind.IMAGE, method="array")
        return Schema(
            kind=Kind.ARRAY,
            element=self,
            array_constraints=ArrayConstraints(min=min, max=max, length=length),
        )

    def max_files(self, count: int) -> "Schema":
        if self.kind is Kind.ARRAY:
            return replace(self, array_constraints=replace(self.array_constraints, max=count))
        return self.array(max=count)

    def min_files(self, count: int) -> "Schema":
        if self.kind is Kind.ARRAY:
            return replace(self, array_constraints=replace(self.array_constraints, min=count))
        return self.array(min=count)

    def min(self, count: int) -> "Schema":
        self._require(Kind.ARRAY, method="min")
        return replace(self, array_constraints=replace(self.array_constraints, min=count))

    def max(self, count: int) -> "Schema":
        self._require(Kind.ARRAY, method="max")
        return replace(self, array_constraints=replace(self.array_constraints, max=count))

    def length(self, count: int) -> "Schema":
        self._require(Kind.ARRAY, method="length")
        return replace(self, array_constraints=replace(self.array_constraints, length=count))

    def optional(self) -> "Schema":
        return replace(self, is_optional=True)

    def refine(self, check: Refinement, message: str) -> "Schema":
        """Append a custom rule; ``check`` may be sync or async."""
        return replace(self, refinements=self.refinements + ((check, message),))

    def transform(self, transformer: Transform) -> "Schema":
        return replace(self, transforms=self.transforms + (transformer,))

    def per_file(self) -> "Schema":
        """Schema that a single file of this shape must satisfy."""
        if self.kind is Kind.ARRAY and self.element is not None:
            return self.element.per_file()
        return self

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate(
        self, value: Any, context: Optional[ValidationContext] = None
    ) -> ValidationResult:
        """Run the full pipeline: optional, structure, refinements, transforms."""
        context = context or ValidationContext()
        try:
            if self.is_optional and value is None:
                return ValidationResult.ok(None)

            parsed = await self._parse(value)
            if not parsed.success:
                return parsed

            if self.kind is Kind.OBJECT and context.all_files is None and isinstance(value, Mapping):
                context = replace(context, all_files=value)
            refined = await self.apply_refinements(value, context)
            if not refined.success:
                return refined

            data = parsed.data
            for transformer in self.transforms:
                data = await _resolve(
                    transformer(TransformContext(file=value, original_data=data, metadata=context))
                )
            return ValidationResult.ok(data)
        except Exception as e:
            logger.debug("Schema validation raised", exc_info=True)
            return ValidationResult.fail("VALIDATION_ERROR", str(e) or "Unknown validation error")

    async def apply_refinements(
        self, value: Any, context: Optional[ValidationContext] = None
    ) -> ValidationResult:
        """Run custom refinements only, stopping at the first failure."""
        context = replace(context or ValidationContext(), file=value)
        for check, message in self.refinements:
            if not await _resolve(check(context)):
                return ValidationResult.fail("CUSTOM_VALIDATION", message)
        return ValidationResult.ok(value)

    def check_count(self, count: int) -> ValidationResult:
        """Check an item count against array bounds (min, max, exact)."""
        bounds = self.array_constraints
        if bounds.min is not None and count < bounds.min:
            return ValidationResult.fail(
                "ARRAY_TOO_SHORT", f"Array must have at least {bounds.min} items"
            )
        if bounds.max is not None and count > bounds.max:
            return ValidationResult.fail(
                "ARRAY_TOO_LONG", f"Array must have at most {bounds.max} items"
            )
        if bounds.length is not None and count != bounds.length:
            return ValidationResult.fail(
                "ARRAY_WRONG_LENGTH", f"Array must have exactly {bounds.length} items"
            )
        return ValidationResult.ok(count)

    async def _parse(self, value: Any) -> ValidationResult:
        if self.kind in (Kind.FILE, Kind.IMAGE):
            return self._parse_file(value)
        if self.kind is Kind.ARRAY:
            return await self._parse_array(value)
        return await self._parse_object(value)

    def _parse_file(self, value: Any) -> ValidationResult:
        info = describe_file(value)
        if info is None:
            return ValidationResult.fail("INVALID_TYPE", "Expected file object")

        constraints = self.constraints
        if constraints.max_size is not None:
            max_bytes = parse_size(constraints.max_size)
            if info.size > max_bytes:
                return ValidationResult.fail(
                    "FILE_TOO_LARGE",
                    f"File size {format_size(info.size)} exceeds maximum {format_size(max_bytes)}",
                )

        if constraints.min_size is not None:
            min_bytes = parse_size(constraints.min_size)
            if info.size < min_bytes:
                return ValidationResult.fail(
                    "FILE_TOO_SMALL",
                    f"File size {format_size(info.size)} is below minimum {format_size(min_bytes)}",
                )

        if constraints.allowed_types:
            if not any(_type_matches(info.mime_type, t) for t in constraints.allowed_types):
                return ValidationResult.fail(
                    "INVALID_FILE_TYPE",
                    f"File type {info.mime_type or 'unknown'} is not allowed. "
                    f"Allowed types: {', '.join(constraints.allowed_types)}",
                )

        if constraints.allowed_extensions:
            if not any(_extension_matches(info.name, e) for e in constraints.allowed_extensions):
                return ValidationResult.fail(
                    "INVALID_FILE_EXTENSION",
                    f"File extension of {info.name} is not allowed. "
                    f"Allowed extensions: {', '.join(constraints.allowed_extensions)}",
                )

        return ValidationResult.ok(value)

    async def _parse_array(self, value: Any) -> ValidationResult:
        if not isinstance(value, (list, tuple)):
            return ValidationResult.fail("INVALID_TYPE", "Expected array of files")

        counted = self.check_count(len(value))
        if not counted.success:
            return counted

        items = []
        for index, item in enumerate(value):
            segment = f"[{index}]"
            result = await self.element.validate(item, ValidationContext(field_name=segment))
            if not result.success:
                return ValidationResult(success=False, error=result.error.prefixed(segment))
            items.append(result.data)
        return ValidationResult.ok(items)

    async def _parse_object(self, value: Any) -> ValidationResult:
        if not isinstance(value, Mapping):
            return ValidationResult.fail("INVALID_TYPE", "Expected object")

        data: dict[str, Any] = {}
        for key, field_schema in self.shape.items():
            result = await field_schema.validate(
                value.get(key), ValidationContext(field_name=key, all_files=value)
            )
            if not result.success:
                return ValidationResult(success=False, error=result.error.prefixed(key))
            if result.data is not None:
                data[key] = result.data
        return ValidationResult.ok(data)


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------


def file(
    max_size: Optional[Union[int, str]] = None,
    min_size: Optional[Union[int, str]] = None,
    types: Sequence[str] = (),
    extensions: Sequence[str] = (),
) -> Schema:
    """Schema for a single file of any type."""
    for size in (max_size, min_size):
        if size is not None:
            parse_size(size)
    return Schema(
        kind=Kind.FILE,
        constraints=FileConstraints(
            max_size=max_size,
            min_size=min_size,
            allowed_types=tuple(types),
            allowed_extensions=tuple(extensions),
        ),
    )


def image(
    max_size: Optional[Union[int, str]] = None,
    min_size: Optional[Union[int, str]] = None,
    types: Sequence[str] = ("image/*",),
    extensions: Sequence[str] = (),
) -> Schema:
    """Schema for a single image; defaults to any ``image/*`` type."""
    base = file(max_size=max_size, min_size=min_size, types=types, extensions=extensions)
    return replace(base, kind=Kind.IMAGE)


def object(shape: Mapping[str, Schema]) -> Schema:  # noqa: A001
    """Schema for named fields, each validated against its own schema."""
    if not shape:
        raise ValueError("object schema needs at least one field")
    return Schema(kind=Kind.OBJECT, shape=MappingProxyType(dict(shape)))
