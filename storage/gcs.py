"""
Google Cloud Storage object store for participant recordings

Handles:
1. Writing and removing recording objects
2. Existence checks before a download link is handed out
3. Generating V4 signed URLs for time-limited access

The google-cloud-storage client is blocking, so every public method runs the
call in a worker thread under an explicit timeout and maps transport failures
to UpstreamUnavailable.
"""

import asyncio
import logging
import os
from datetime import timedelta
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from google.api_core import exceptions as gcs_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage
from google.oauth2 import service_account

from utils.errors import UpstreamUnavailable

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = float(os.getenv("OBJECT_STORE_TIMEOUT_SECONDS", "10"))

# GCS V4 signatures cannot outlive 7 days
MAX_SIGNED_URL_TTL_SECONDS = 7 * 24 * 3600

_UPSTREAM_ERRORS = (
    gcs_exceptions.GoogleAPIError,
    auth_exceptions.TransportError,
    auth_exceptions.RefreshError,
    ConnectionError,
)


class GCSStorageManager:
    """Object store operations for recording artifacts"""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        credentials_path: Optional[str] = None,
        project_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[storage.Client] = None,
        credentials: Any = None,
    ):
        """
        Initialize GCS Storage Manager

        Args:
            bucket_name: GCS bucket name (defaults to env var GCS_BUCKET)
            credentials_path: Path to service account JSON (GCS_CREDENTIALS_JSON)
            project_id: GCP project ID (GCS_PROJECT_ID)
            timeout_seconds: Per-call timeout (OBJECT_STORE_TIMEOUT_SECONDS)
            client: Pre-built storage client, skips credential loading
            credentials: Signing credentials to use with ``client``
        """
        self.bucket_name = bucket_name or os.getenv("GCS_BUCKET")
        self.project_id = project_id or os.getenv("GCS_PROJECT_ID")
        self.timeout_seconds = timeout_seconds or DEFAULT_TIMEOUT_SECONDS

        if not self.bucket_name:
            raise ValueError("GCS_BUCKET not configured")

        if client is None:
            credentials_path = credentials_path or os.getenv("GCS_CREDENTIALS_JSON")
            if not credentials_path or not os.path.exists(credentials_path):
                raise ValueError(f"GCS credentials not found at: {credentials_path}")
            credentials = service_account.Credentials.from_service_account_file(credentials_path)
            client = storage.Client(credentials=credentials, project=self.project_id)

        self.credentials = credentials
        self.client = client
        self.bucket = self.client.bucket(self.bucket_name)

        logger.info(
            "GCS Storage Manager initialized: bucket=%s, project=%s",
            self.bucket_name,
            self.project_id,
        )

    def get_gs_url(self, blob_path: str) -> str:
        """Get gs:// URL for a blob"""
        return f"gs://{self.bucket_name}/{blob_path}"

    async def _run(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Object store %s timed out after %.1fs", operation, self.timeout_seconds)
            raise UpstreamUnavailable("object_store", operation, "Object store timed out") from exc
        except gcs_exceptions.NotFound:
            raise
        except _UPSTREAM_ERRORS as exc:
            logger.error("Object store %s failed: %s", operation, exc, exc_info=True)
            raise UpstreamUnavailable("object_store", operation, str(exc)) from exc

    async def put(
        self,
        blob_path: str,
        data: bytes,
        content_type: str = "audio/ogg",
        metadata: Optional[dict] = None,
    ) -> str:
        """Upload bytes to ``blob_path``, overwriting any existing object. Returns the gs:// URL."""
        blob = self.bucket.blob(blob_path)
        if metadata:
            blob.metadata = metadata
        await self._run("put", blob.upload_from_string, data, content_type=content_type)

        gs_url = self.get_gs_url(blob_path)
        logger.info("Uploaded recording to GCS: %s (size: %d bytes)", gs_url, len(data))
        return gs_url

    async def remove(self, blob_path: str) -> bool:
        """Delete an object. Returns False if it was already gone."""
        blob = self.bucket.blob(blob_path)
        try:
            await self._run("remove", blob.delete)
        except gcs_exceptions.NotFound:
            logger.info("Recording object already absent: %s", blob_path)
            return False
        logger.info("Deleted recording from GCS: %s", blob_path)
        return True

    async def exists(self, blob_path: str) -> bool:
        blob = self.bucket.blob(blob_path)
        return bool(await self._run("exists", blob.exists))

    async def sign(self, blob_path: str, ttl_seconds: int) -> str:
        """Generate a V4 signed GET URL valid for ``ttl_seconds``."""
        if ttl_seconds <= 0 or ttl_seconds > MAX_SIGNED_URL_TTL_SECONDS:
            raise ValueError(f"ttl_seconds must be between 1 and {MAX_SIGNED_URL_TTL_SECONDS}")

        blob = self.bucket.blob(blob_path)
        url = await self._run(
            "sign",
            blob.generate_signed_url,
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
            credentials=self.credentials,
        )
        logger.info("Generated signed URL for %s (expires in %d seconds)", blob_path, ttl_seconds)
        return url


__all__ = ["GCSStorageManager", "MAX_SIGNED_URL_TTL_SECONDS"]
