# src/app/infra/storage/base.py
"""
Abstract base class for storage providers.
This interface allows easy swapping between different storage backends (Supabase, R2, ...)
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4


class StorageProvider(ABC):
    """
    Abstract interface for the Media Store.

    Implementations:
    - SupabaseStorageProvider: Supabase Storage bucket (default)
    - R2StorageProvider: Cloudflare R2 (S3-compatible)
    """

    @abstractmethod
    def upload_file(
        self,
        object_key: str,
        source_path: Path,
        content_type: str,
    ) -> str:
        """
        Upload a local file, replacing any existing object at the key.

        Args:
            object_key: The key/path where the object will be stored
            source_path: Local file to upload
            content_type: MIME type of the content (e.g., "video/mp4")

        Returns:
            The object key
        """
        pass

    @abstractmethod
    def get_public_url(self, object_key: str) -> str:
        """Return a URL from which the object can be fetched anonymously."""
        pass

    @abstractmethod
    def delete_object(self, object_key: str) -> bool:
        """
        Delete an object from storage.

        Returns:
            True if deletion was successful
        """
        pass

    def generate_object_key(
        self,
        user_id: str,
        filename: str,
    ) -> str:
        """
        Generate a standardized object key for uploaded media.

        Format: {user_id}/{timestamp_ms}_{uuid8}_{filename}
        """
        now = datetime.now(timezone.utc)
        safe_filename = re.sub(r"[^a-zA-Z0-9._-]", "_", filename)
        unique_id = uuid4().hex[:8]
        return f"{user_id}/{int(now.timestamp() * 1000)}_{unique_id}_{safe_filename}"

    @staticmethod
    def clip_object_key(clip_id: str, start_time: float, end_time: float) -> str:
        """Key for a rendered clip: clips/{clip_id}_{start}-{end}.mp4"""
        return f"clips/{clip_id}_{start_time:g}-{end_time:g}.mp4"
