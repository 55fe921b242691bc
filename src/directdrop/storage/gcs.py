"""Google Cloud Storage backend."""

import logging
from datetime import timedelta
from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.cloud import storage
from google.oauth2 import service_account

from directdrop.core.config import UploadConfig
from directdrop.core.exceptions import ConfigurationError, SigningError
from directdrop.storage.base import SignedUpload, StorageBackend

logger = logging.getLogger(__name__)


class GCSStorageBackend(StorageBackend):
    """Google Cloud Storage backend issuing V4 signed URLs."""

    def __init__(self, config: UploadConfig):
        self.config = config
        self._client: Optional[storage.Client] = None
        self._bucket: Optional[storage.Bucket] = None

    def _get_bucket(self) -> storage.Bucket:
        """Lazy-load and cache GCS bucket."""
        if self._bucket is None:
            if not self.config.bucket:
                raise ConfigurationError("GCS bucket name not configured")

            try:
                self._client = storage.Client(project=self.config.project_id or None)
            except DefaultCredentialsError as e:
                raise ConfigurationError(f"GCS credentials not available: {e}") from e
            self._bucket = self._client.bucket(self.config.bucket)

        return self._bucket

    def _signing_credentials(self) -> tuple[object, Optional[str]]:
        """Return credentials able to sign, plus the service account email.

        Key-file service accounts sign locally. Anything else (Cloud Run, GCE,
        GKE) signs through the IAM signBlob API; the service account then
        needs roles/iam.serviceAccountTokenCreator on itself.
        """
        credentials = self._client._credentials
        if isinstance(credentials, service_account.Credentials):
            return credentials, None

        from google.auth import compute_engine, iam
        from google.auth.transport import requests as auth_requests

        credentials = compute_engine.Credentials()
        auth_request = auth_requests.Request()
        credentials.refresh(auth_request)
        service_account_email = credentials.service_account_email

        signer = iam.Signer(
            request=auth_request,
            credentials=credentials,
            service_account_email=service_account_email,
        )
        # token_uri is required by the constructor only; signing goes through the IAM signer.
        signing_creds = service_account.Credentials(
            signer=signer,
            service_account_email=service_account_email,
            token_uri="https://oauth2.googleapis.com/token",
        )
        return signing_creds, service_account_email

    def sign(
        self, key: str, content_type: str, content_length: int, expires_in: int
    ) -> SignedUpload:
        """Generate a V4 signed URL for a single PUT."""
        bucket = self._get_bucket()
        blob = bucket.blob(key)

        try:
            credentials, service_account_email = self._signing_credentials()
            signed_url = blob.generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in),
                method="PUT",
                content_type=content_type,
                headers={"Content-Type": content_type},
                credentials=credentials,
                service_account_email=service_account_email,
            )
        except DefaultCredentialsError as e:
            raise ConfigurationError(f"GCS credentials not available: {e}") from e
        except (GoogleAuthError, GoogleAPIError, AttributeError) as e:
            logger.warning(
                "Failed to sign upload URL",
                extra={"bucket": self.config.bucket, "object_name": key, "error": str(e)},
            )
            raise SigningError(f"Failed to generate signed URL: {e}") from e

        return SignedUpload(url=signed_url, key=key)

    def sign_download(self, key: str, expires_in: int) -> str | None:
        """Generate a V4 signed URL for reading ``key``."""
        bucket = self._get_bucket()
        try:
            credentials, service_account_email = self._signing_credentials()
            return bucket.blob(key).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=expires_in),
                method="GET",
                credentials=credentials,
                service_account_email=service_account_email,
            )
        except (GoogleAuthError, GoogleAPIError, AttributeError) as e:
            raise SigningError(f"Failed to generate download URL: {e}") from e

    def public_url(self, key: str) -> str:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        if not self.config.bucket:
            raise ConfigurationError("GCS bucket name not configured")
        return f"https://storage.googleapis.com/{self.config.bucket}/{key}"

    def exists(self, key: str) -> bool:
        """Check if object exists in GCS."""
        bucket = self._get_bucket()
        return bucket.blob(key).exists()

    def get_backend_name(self) -> str:
        return "gcs"
