"""Pytest configuration and shared fixtures."""

import pytest
from tenacity import wait_none

from directdrop.core.config import UploadConfig
from directdrop.storage.authorization import AuthorizationGenerator
from directdrop.storage.local import LocalStorageBackend


@pytest.fixture
def upload_config(tmp_path):
    """Local-backend upload configuration rooted in a temp directory."""
    return UploadConfig(
        storage_backend="local",
        public_base_url="http://testserver",
        local_storage_path=str(tmp_path / "uploads"),
        local_signing_secret="test-secret",
    )


@pytest.fixture
def local_backend(upload_config):
    return LocalStorageBackend(upload_config)


@pytest.fixture
def generator(local_backend, upload_config):
    """Authorization generator that retries without sleeping."""
    return AuthorizationGenerator(local_backend, upload_config, retry_wait=wait_none())

