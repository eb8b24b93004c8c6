"""Storage service for source documents kept in Supabase storage."""

from typing import Any, Dict, Optional

import httpx

from mica_checker.core.config import StorageSettings, settings
from mica_checker.core.exceptions import AcquisitionError, APIClientError, ConfigurationError
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StorageService:
    """Uploads and downloads objects in the documents bucket over the storage REST API."""

    def __init__(
        self,
        storage_settings: Optional[StorageSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[int] = None,
    ):
        config = storage_settings or settings.storage
        self.url = config.url.rstrip("/")
        self.bucket = config.bucket
        self.service_role_key = config.service_role_key
        self.base_api_url = f"{self.url}/storage/v1"
        self.timeout = timeout or settings.http_timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.service_role_key)

    def _client(self) -> httpx.AsyncClient:
        if not self.url:
            raise ConfigurationError("SUPABASE_URL is not configured for document storage")
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def upload_file(
        self,
        content: bytes,
        path: str,
        content_type: str = "application/pdf",
    ) -> Dict[str, Any]:
        """Upload bytes to the documents bucket.

        Args:
            content: File content
            path: Object path within the bucket
            content_type: MIME type sent with the object

        Returns:
            Storage API response body

        Raises:
            APIClientError: If the upload fails
        """
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"

        async with self._client() as client:
            try:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type, "x-upsert": "true"},
                    content=content,
                )
            except httpx.HTTPError as e:
                LOGGER.error(f"Error uploading file to storage: {e}", exc_info=True)
                raise APIClientError(f"Storage upload error: {e}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to storage: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code}
            )
            raise APIClientError(f"Upload failed: {response.text}")

        LOGGER.info(f"Uploaded {len(content)} bytes to {self.bucket}/{path}")
        return response.json()

    async def download_file(self, path: str) -> bytes:
        """Download an object from the documents bucket.

        Raises:
            AcquisitionError: If the object cannot be fetched
        """
        download_url = f"{self.base_api_url}/object/{self.bucket}/{path}"

        async with self._client() as client:
            try:
                response = await client.get(download_url, headers=self.headers)
            except httpx.HTTPError as e:
                LOGGER.error(f"Error downloading {path} from storage: {e}", exc_info=True)
                raise AcquisitionError(f"Storage download error: {e}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.warning(
                f"Failed to download file from storage: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code}
            )
            raise AcquisitionError(f"Download failed for {path}: HTTP {response.status_code}")

        return response.content
