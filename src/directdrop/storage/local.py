"""Local filesystem storage backend.

Serves development setups: signed URLs point at the application's own
``/storage/{key}`` endpoint, which checks the HMAC signature before writing.
"""

import hashlib
import hmac
import logging
import time
from pathlib import Path
from typing import BinaryIO, Callable, Mapping
from urllib.parse import quote, urlencode

from directdrop.core.config import UploadConfig
from directdrop.core.exceptions import AuthorizationError, ConfigurationError
from directdrop.storage.base import SignedUpload, StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, config: UploadConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.base_path = Path(config.local_storage_path)
        self._clock = clock

    @property
    def base_url(self) -> str:
        return (self.config.public_base_url or DEFAULT_BASE_URL).rstrip("/")

    def _secret(self) -> bytes:
        if not self.config.local_signing_secret:
            raise ConfigurationError("Local signing secret not configured")
        return self.config.local_signing_secret.encode("utf-8")

    def _signature(self, method: str, key: str, content_type: str, expires: int) -> str:
        payload = "\n".join([method, key, content_type, str(expires)])
        return hmac.new(self._secret(), payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def _path_for(self, key: str) -> Path:
        target = (self.base_path / key).resolve()
        if self.base_path.resolve() not in target.parents:
            raise AuthorizationError(f"Key escapes storage root: {key}")
        return target

    def sign(
        self, key: str, content_type: str, content_length: int, expires_in: int
    ) -> SignedUpload:
        expires = int(self._clock()) + expires_in
        query = urlencode(
            {
                "expires": expires,
                "contentType": content_type,
                "signature": self._signature("PUT", key, content_type, expires),
            }
        )
        return SignedUpload(url=f"{self.base_url}/storage/{quote(key)}?{query}", key=key)

    def verify(self, method: str, key: str, content_type: str, query: Mapping[str, str]) -> None:
        """Check a signed URL's query parameters.

        Raises:
            AuthorizationError: If the signature is invalid or expired
        """
        try:
            expires = int(query.get("expires", ""))
        except ValueError:
            raise AuthorizationError("Missing or invalid expiry") from None

        if expires < int(self._clock()):
            raise AuthorizationError("Signed URL has expired")

        signed_type = query.get("contentType", "")
        if signed_type and content_type.split(";")[0].strip() != signed_type:
            raise AuthorizationError("Content type does not match signed URL")

        expected = self._signature(method, key, signed_type, expires)
        if not hmac.compare_digest(expected, query.get("signature", "")):
            raise AuthorizationError("Invalid signature")

    def store(self, key: str, file_data: BinaryIO) -> int:
        """Write an object to the local filesystem, returning bytes written."""
        target_path = self._path_for(key)
        target_path.parent.mkdir(parents=True, exist_ok=True)

        written = 0
        with open(target_path, "wb") as f:
            while chunk := file_data.read(65536):  # 64KB chunks
                f.write(chunk)
                written += len(chunk)

        logger.info("Object stored locally", extra={"object_name": key, "size_bytes": written})
        return written

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/{quote(key)}"

    def exists(self, key: str) -> bool:
        try:
            return self._path_for(key).is_file()
        except AuthorizationError:
            return False

    def get_backend_name(self) -> str:
        return "local"
