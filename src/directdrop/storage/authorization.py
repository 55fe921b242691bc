"""Signed write permissions for direct transfers."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from directdrop.core.config import UploadConfig
from directdrop.core.exceptions import SigningError
from directdrop.models.upload import AuthorizationGrant
from directdrop.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class AuthorizationGenerator:
    """Turns an object key into a time-boxed, single-PUT grant.

    Transient signing failures are retried; configuration failures are not.
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: UploadConfig,
        retry_wait: Optional[wait_base] = None,
    ):
        self.storage = storage
        self.config = config
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    async def issue(
        self,
        key: str,
        content_type: str,
        content_length: int,
        metadata: Optional[Mapping[str, Any]] = None,
        expires_in: Optional[int] = None,
    ) -> AuthorizationGrant:
        """Sign a PUT for ``key``.

        Args:
            key: Object key the client may write
            content_type: MIME type bound into the signature
            content_length: Declared size in bytes
            metadata: Middleware metadata echoed back in the grant
            expires_in: Lifetime in seconds, defaults to the configured value

        Returns:
            AuthorizationGrant carrying only the signed URL and key

        Raises:
            ConfigurationError: Missing bucket or credentials (not retried)
            SigningError: Signing kept failing after all attempts
        """
        expires_in = expires_in or self.config.signed_url_expires_seconds
        content_type = content_type or "application/octet-stream"

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.signing_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(SigningError),
            reraise=True,
        ):
            with attempt:
                signed = await asyncio.to_thread(
                    self.storage.sign, key, content_type, content_length, expires_in
                )

        logger.info(
            "Upload authorized",
            extra={
                "object_name": signed.key,
                "content_type": content_type,
                "size_bytes": content_length,
                "expires_in": expires_in,
                "backend": self.storage.get_backend_name(),
            },
        )

        return AuthorizationGrant(
            object_key=signed.key,
            signed_url=signed.url,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            metadata=dict(metadata or {}),
        )
