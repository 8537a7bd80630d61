"""
Object storage for attachment bytes.

Two backends behind one class:
- local: files under LOCAL_STORAGE_PATH (development, tests)
- s3:    any S3-compatible bucket via boto3

All methods are blocking; async callers wrap them in run_in_threadpool.
"""

import os
import uuid
from typing import Optional

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from api.core.config import settings
from api.utils.exceptions import StorageException
from api.utils.logger import get_logger

logger = get_logger(__name__)


def validate_file(
    filename: str, content_type: str, file_size: int
) -> Optional[str]:
    """
    Check a file against the type allowlist and size limit.

    Returns an error message, or None when the file is acceptable.
    """
    if not filename:
        return "File has no name"
    if content_type not in settings.ALLOWED_ATTACHMENT_TYPES:
        return f"File type not allowed: {content_type}"
    if file_size <= 0:
        return "File is empty"
    if file_size > settings.MAX_ATTACHMENT_SIZE:
        max_mb = settings.MAX_ATTACHMENT_SIZE / (1024 * 1024)
        return f"File too large: {file_size / (1024 * 1024):.2f}MB (max {max_mb:.0f}MB)"
    return None


def build_storage_key(organization_id: uuid.UUID, ticket_id: uuid.UUID, filename: str) -> str:
    """`{organization_id}/{ticket_id}/{random}.{ext}`, tenant prefix first."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"{organization_id}/{ticket_id}/{uuid.uuid4().hex}.{ext}"


class ObjectStorage:
    """Thin wrapper over the configured storage backend."""

    def __init__(
        self,
        backend: str = "local",
        local_path: str = "/tmp/ticketdesk-attachments",
        bucket: str = "",
        public_base_url: str = "",
        client: Optional[BaseClient] = None,
    ):
        self.backend = backend
        self.local_path = local_path
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._client = client

    @classmethod
    def from_settings(cls) -> "ObjectStorage":
        return cls(
            backend=settings.STORAGE_BACKEND,
            local_path=settings.LOCAL_STORAGE_PATH,
            bucket=settings.S3_BUCKET,
            public_base_url=settings.PUBLIC_STORAGE_BASE_URL,
        )

    @property
    def client(self) -> BaseClient:
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=settings.S3_REGION or None,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
                endpoint_url=settings.S3_ENDPOINT_URL.rstrip("/") or None,
            )
        return self._client

    def _local_file(self, key: str) -> str:
        root = os.path.abspath(self.local_path)
        path = os.path.abspath(os.path.join(root, key))
        if not path.startswith(root + os.sep):
            raise StorageException(detail="Invalid storage path.")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store bytes under key. Raises StorageException on backend failure."""
        if self.backend == "s3":
            try:
                self.client.put_object(
                    Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
                )
            except (BotoCoreError, ClientError) as e:
                logger.error(f"S3 upload failed for {key}: {e}")
                raise StorageException()
            return

        path = self._local_file(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Local upload failed for {key}: {e}")
            raise StorageException()

    def get(self, key: str) -> bytes:
        if self.backend == "s3":
            try:
                response = self.client.get_object(Bucket=self.bucket, Key=key)
                return response["Body"].read()
            except (BotoCoreError, ClientError) as e:
                logger.error(f"S3 download failed for {key}: {e}")
                raise StorageException()

        try:
            with open(self._local_file(key), "rb") as f:
                return f.read()
        except OSError as e:
            logger.error(f"Local download failed for {key}: {e}")
            raise StorageException()

    def delete(self, key: str) -> None:
        if self.backend == "s3":
            try:
                self.client.delete_object(Bucket=self.bucket, Key=key)
            except (BotoCoreError, ClientError) as e:
                logger.error(f"S3 delete failed for {key}: {e}")
                raise StorageException()
            return

        try:
            os.remove(self._local_file(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Local delete failed for {key}: {e}")
            raise StorageException()

    def public_url(self, key: str) -> str:
        if self.backend == "s3" and not self.public_base_url.startswith("http"):
            endpoint = settings.S3_ENDPOINT_URL.rstrip("/")
            if endpoint:
                return f"{endpoint}/{self.bucket}/{key}"
            return f"https://{self.bucket}.s3.{settings.S3_REGION}.amazonaws.com/{key}"
        return f"{self.public_base_url}/{key}"
