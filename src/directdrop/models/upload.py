"""Upload protocol wire models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class FileDescriptor(BaseModel):
    """File metadata sent during authorization. Never carries bytes."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1, description="Original file name")
    size: int = Field(..., ge=0, description="File size in bytes")
    mime_type: str = Field(
        "application/octet-stream",
        validation_alias=AliasChoices("mimeType", "type", "mime_type"),
        serialization_alias="mimeType",
        description="MIME type of the file",
    )
    field: Optional[str] = Field(
        None, description="Target field name for routes built on an object schema"
    )


class AuthorizeRequest(BaseModel):
    """Request body for the authorize action."""

    files: list[FileDescriptor]
    metadata: Optional[dict[str, Any]] = Field(
        None, description="Client-supplied metadata, untrusted"
    )


class AuthorizeResult(BaseModel):
    """Per-file outcome of the authorize action."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    file: FileDescriptor
    signed_url: Optional[str] = Field(None, alias="signedUrl")
    object_key: Optional[str] = Field(None, alias="objectKey")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    metadata: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    code: Optional[str] = None


class CompletionEntry(BaseModel):
    """Client confirmation that one direct transfer succeeded."""

    model_config = ConfigDict(populate_by_name=True)

    object_key: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("objectKey", "key", "object_key"),
        serialization_alias="objectKey",
    )
    file: FileDescriptor
    metadata: Optional[dict[str, Any]] = None


class CompleteRequest(BaseModel):
    """Request body for the complete action."""

    completions: list[CompletionEntry]


class CompleteResult(BaseModel):
    """Per-file outcome of the complete action."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    object_key: str = Field(..., alias="objectKey")
    url: Optional[str] = None
    download_url: Optional[str] = Field(None, alias="downloadUrl")
    file: Optional[FileDescriptor] = None
    error: Optional[str] = None
    code: Optional[str] = None


class AuthorizationGrant(BaseModel):
    """Time-boxed permission to PUT exactly one object."""

    model_config = ConfigDict(frozen=True)

    object_key: str
    signed_url: str
    expires_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
