# src/app/infra/storage/r2_provider.py
"""
Cloudflare R2 storage provider implementation.
R2 is S3-compatible, so we use boto3 with custom endpoint.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.app.domain.errors import StorageError
from src.app.infra.storage.base import StorageProvider

logger = logging.getLogger(__name__)

# Used when the bucket has no public domain configured
PRESIGNED_URL_TTL_SECONDS = 7 * 24 * 3600


class R2StorageProvider(StorageProvider):
    """
    Cloudflare R2 storage provider using boto3 (S3-compatible).

    Environment variables required:
    - R2_ACCOUNT_ID: Cloudflare account ID
    - R2_ACCESS_KEY_ID: R2 access key ID
    - R2_SECRET_ACCESS_KEY: R2 secret access key
    - R2_BUCKET_NAME: Name of the R2 bucket
    - R2_PUBLIC_URL: (Optional) Public URL for the bucket
    """

    def __init__(
        self,
        account_id: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        bucket_name: Optional[str] = None,
        public_url: Optional[str] = None,
        client=None,
    ):
        self.account_id = account_id or os.getenv("R2_ACCOUNT_ID")
        self.access_key_id = access_key_id or os.getenv("R2_ACCESS_KEY_ID")
        self.secret_access_key = secret_access_key or os.getenv("R2_SECRET_ACCESS_KEY")
        self.bucket_name = bucket_name or os.getenv("R2_BUCKET_NAME")
        self.public_url = (public_url or os.getenv("R2_PUBLIC_URL") or "").rstrip("/") or None

        if client is not None:
            self._client = client
            return

        if not all([self.account_id, self.access_key_id, self.secret_access_key, self.bucket_name]):
            raise StorageError(
                "Missing R2 configuration. Required: R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, "
                "R2_SECRET_ACCESS_KEY, R2_BUCKET_NAME"
            )

        self.endpoint_url = f"https://{self.account_id}.r2.cloudflarestorage.com"

        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
            region_name="auto",  # R2 uses 'auto' as region
        )

        logger.info(
            "R2StorageProvider initialized: bucket=%s, endpoint=%s",
            self.bucket_name,
            self.endpoint_url,
        )

    def upload_file(self, object_key: str, source_path: Path, content_type: str) -> str:
        try:
            self._client.upload_file(
                Filename=str(source_path),
                Bucket=self.bucket_name,
                Key=object_key,
                ExtraArgs={"ContentType": content_type},
            )
            logger.info(
                "Uploaded to R2: key=%s, size=%d bytes",
                object_key,
                source_path.stat().st_size,
            )
            return object_key
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to upload to R2: %s", e)
            raise StorageError(f"Failed to upload file: {e}") from e

    def get_public_url(self, object_key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{object_key}"
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket_name, "Key": object_key},
                ExpiresIn=PRESIGNED_URL_TTL_SECONDS,
            )
        except ClientError as e:
            logger.error("Failed to generate signed GET URL: %s", e)
            raise StorageError(f"Failed to generate download URL: {e}") from e

    def delete_object(self, object_key: str) -> bool:
        """Delete an object from R2."""
        try:
            self._client.delete_object(
                Bucket=self.bucket_name,
                Key=object_key,
            )
            logger.info("Deleted object from R2: key=%s", object_key)
            return True

        except ClientError as e:
            logger.error("Failed to delete object from R2: %s", e)
            return False

