"""S3-compatible receipt image storage using MinIO.

Receipt images are stored under "<month>/<record id><suffix>" so that one
month of receipts can be handed over to the accountant as a single prefix.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
import mimetypes
from datetime import timedelta
from pathlib import PurePath

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from vatscan.shared.config import Settings

logger = logging.getLogger(__name__)

_s3_retry = retry(
    retry=retry_if_exception_type(S3Error),
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=1, max=10),
    reraise=True,
)


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        object_name: Full object path in storage
        bucket: Bucket name
        error: Error message if operation failed
        etag: Object ETag (hash) if available
        size: Object size in bytes if available
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None

    @property
    def image_ref(self) -> str | None:
        """"bucket/object" reference stored on the invoice record."""
        if not self.success or not self.bucket or not self.object_name:
            return None
        return f"{self.bucket}/{self.object_name}"


def receipt_object_name(record_id: str, month: str, filename: str | None) -> str:
    """Object name of a receipt image, keeping the upload's file suffix."""
    suffix = PurePath(filename).suffix.lower() if filename else ""
    return f"{month}/{record_id}{suffix or '.bin'}"


def split_image_ref(image_ref: str) -> tuple[str, str]:
    """Split a "bucket/object" reference into its bucket and object name."""
    bucket, _, object_name = image_ref.partition("/")
    return bucket, object_name


class StorageService:
    """Receipt image storage on an S3-compatible backend (MinIO)."""

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key or not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage credentials not configured. Set VATSCAN_STORAGE_ACCESS_KEY "
                    "and VATSCAN_STORAGE_SECRET_KEY environment variables."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """Check if storage is enabled and credentials are set."""
        if not self.settings.storage_enabled:
            return False
        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable.

        Returns:
            True if MinIO server responds to list_buckets
        """
        if not self.is_available():
            return False

        try:
            self._get_client().list_buckets()
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_exists_cache.add(bucket)

    @_s3_retry
    def _put(self, bucket: str, object_name: str, data: bytes, content_type: str) -> str:
        client = self._get_client()
        self._ensure_bucket(bucket)
        result = client.put_object(
            bucket_name=bucket,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        return result.etag

    def upload_receipt(
        self,
        data: bytes,
        record_id: str,
        month: str,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> StorageResult:
        """Upload a receipt image, retrying transient S3 errors.

        Args:
            data: Image bytes
            record_id: Id of the invoice record the image belongs to
            month: Accounting month (YYYY-MM) used as object prefix
            filename: Original file name (for the suffix and content type)
            content_type: MIME type (guessed from filename if not provided)

        Returns:
            StorageResult with upload details
        """
        bucket = self.settings.storage_bucket
        object_name = receipt_object_name(record_id, month, filename)
        if content_type is None:
            content_type = mimetypes.guess_type(object_name)[0] or "application/octet-stream"

        try:
            etag = self._put(bucket, object_name, data, content_type)
        except S3Error as e:
            logger.error(f"S3 error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error uploading {object_name}: {e}")
            return StorageResult(
                success=False, object_name=object_name, bucket=bucket, error=str(e)
            )

        logger.info(f"Uploaded receipt {object_name} to {bucket} ({len(data)} bytes)")
        return StorageResult(
            success=True, object_name=object_name, bucket=bucket, etag=etag, size=len(data)
        )

    def get_receipt_url(self, image_ref: str, expires_seconds: int = 3600) -> str | None:
        """Presigned download URL for a stored receipt image, or None on error."""
        bucket, object_name = split_image_ref(image_ref)
        try:
            return self._get_client().presigned_get_object(
                bucket_name=bucket,
                object_name=object_name,
                expires=timedelta(seconds=expires_seconds),
            )
        except Exception as e:
            logger.error(f"Error generating presigned URL for {image_ref}: {e}")
            return None

    def delete_receipt(self, image_ref: str) -> StorageResult:
        """Delete a stored receipt image."""
        bucket, object_name = split_image_ref(image_ref)
        try:
            self._get_client().remove_object(bucket_name=bucket, object_name=object_name)
        except S3Error as e:
            logger.error(f"S3 error deleting {image_ref}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error deleting {image_ref}: {e}")
            return StorageResult(
                success=False, object_name=object_name, bucket=bucket, error=str(e)
            )

        logger.info(f"Deleted receipt {image_ref}")
        return StorageResult(success=True, object_name=object_name, bucket=bucket)
