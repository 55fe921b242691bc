"""Storage backend factory."""

from directdrop.core.config import UploadConfig
from directdrop.core.exceptions import ConfigurationError
from directdrop.storage.base import StorageBackend
from directdrop.storage.gcs import GCSStorageBackend
from directdrop.storage.local import LocalStorageBackend


def get_storage_backend(config: UploadConfig) -> StorageBackend:
    """Create the storage backend selected by ``config.storage_backend``.

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    if config.storage_backend == "gcs":
        return GCSStorageBackend(config)
    if config.storage_backend == "local":
        return LocalStorageBackend(config)
    raise ConfigurationError(f"Unknown storage backend: {config.storage_backend}")
