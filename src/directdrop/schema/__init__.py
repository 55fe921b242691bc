"""
File validation schemas.

Usage:

    from directdrop import schema as s

    avatar = s.image(max_size="2MB").formats(["png", "jpeg"])
    gallery = s.image().max_size("5MB").max_files(6)
"""

from directdrop.schema.schema import (
    ArrayConstraints,
    FileConstraints,
    Kind,
    Schema,
    TransformContext,
    ValidationContext,
    ValidationIssue,
    ValidationResult,
    describe_file,
    file,
    image,
    object,
)
from directdrop.schema.sizes import format_size, parse_size

__all__ = [
    "ArrayConstraints",
    "FileConstraints",
    "Kind",
    "Schema",
    "TransformContext",
    "ValidationContext",
    "ValidationIssue",
    "ValidationResult",
    "describe_file",
    "file",
    "image",
    "object",
    "format_size",
    "parse_size",
]
