# src/app/infra/storage/supabase_provider.py
"""
Supabase Storage provider. Media and rendered clips live in one public bucket.
"""
from __future__ import annotations

import logging
from pathlib import Path

from supabase import Client

from src.app.domain.errors import StorageError
from src.app.infra.storage.base import StorageProvider

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "webinars"


class SupabaseStorageProvider(StorageProvider):
    def __init__(self, client: Client, bucket_name: str = DEFAULT_BUCKET):
        self._client = client
        self.bucket_name = bucket_name

    def _bucket(self):
        return self._client.storage.from_(self.bucket_name)

    def upload_file(self, object_key: str, source_path: Path, content_type: str) -> str:
        try:
            with open(source_path, "rb") as handle:
                self._bucket().upload(
                    object_key,
                    handle,
                    file_options={"content-type": content_type, "upsert": "true"},
                )
        except Exception as e:
            logger.error("Failed to upload to Supabase Storage: key=%s error=%s", object_key, e)
            raise StorageError(f"Failed to upload file: {e}") from e

        logger.info("Uploaded to Supabase Storage: bucket=%s, key=%s", self.bucket_name, object_key)
        return object_key

    def get_public_url(self, object_key: str) -> str:
        url = self._bucket().get_public_url(object_key)
        # Some client versions append an empty query string
        return url.rstrip("?")

    def delete_object(self, object_key: str) -> bool:
        try:
            self._bucket().remove([object_key])
            logger.info("Deleted object from Supabase Storage: key=%s", object_key)
            return True
        except Exception as e:
            logger.error("Failed to delete object from Supabase Storage: %s", e)
            return False

