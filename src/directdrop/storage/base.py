"""Abstract storage backend interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SignedUpload:
    """A signed write URL for exactly one object key."""

    url: str
    key: str


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Backends hold the credentials; only signed URLs and keys leave them.
    """

    @abstractmethod
    def sign(
        self, key: str, content_type: str, content_length: int, expires_in: int
    ) -> SignedUpload:
        """Generate a signed URL allowing a single PUT of ``key``.

        Args:
            key: Object key to authorize
            content_type: MIME type the client must send
            content_length: Expected size in bytes
            expires_in: Lifetime of the URL in seconds

        Returns:
            Signed URL and the key it covers

        Raises:
            ConfigurationError: If bucket or credentials are missing
            SigningError: If signing failed for a transient reason
        """
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Return the public URL of ``key``."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if an object is stored under ``key``."""
        pass

    def sign_download(self, key: str, expires_in: int) -> str | None:
        """Return a time-limited download URL, or None if unsupported."""
        return None

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass
