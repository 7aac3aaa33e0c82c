# src/app/services/media_service.py
"""
Media upload and lookup.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from src.app.domain.errors import RecordNotFoundError
from src.app.domain.models import ACCEPTED_EXTENSIONS, Media, extension_for_mime_type
from src.app.infra.db.base import MediaRepository
from src.app.infra.storage.base import StorageProvider
from src.app.services.upload_flow import MAX_UPLOAD_BYTES, validate_source

logger = logging.getLogger(__name__)


def _stored_filename(filename: str, mime_type: str) -> str:
    """Client file name with the extension of its resolved type, so the stored URL names its format."""
    name = Path(filename).name
    if Path(name).suffix.lower() in ACCEPTED_EXTENSIONS:
        name = Path(name).stem
    return f"{name}{extension_for_mime_type(mime_type)}"


class MediaService:
    def __init__(
        self,
        repository: MediaRepository,
        storage: StorageProvider,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ):
        self._repo = repository
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes

    def upload(
        self,
        owner_id: str,
        title: str,
        filename: str,
        source_path: Path,
        mime_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> Media:
        """
        Store an uploaded file and create its Media row.

        ``filename`` is the client's name for the file; its extension decides
        the type when ``mime_type`` is missing.

        Raises:
            ValidationError: Title, size or type rejected
            StorageError: The object store refused the upload
        """
        if size_bytes is None:
            size_bytes = source_path.stat().st_size
        source = validate_source(
            title,
            Path(filename),
            size_bytes=size_bytes,
            mime_type=mime_type,
            max_bytes=self.max_upload_bytes,
        )

        object_key = self.storage.generate_object_key(owner_id, _stored_filename(filename, source.mime_type))
        self.storage.upload_file(object_key, source_path, source.mime_type)
        public_url = self.storage.get_public_url(object_key)

        media = self._repo.create_media(
            owner_id=owner_id,
            title=source.title,
            source_url=public_url,
            size_bytes=source.size_bytes,
            mime_type=source.mime_type,
        )
        logger.info("media.uploaded media=%s owner=%s size=%d key=%s", media.id, owner_id, size_bytes, object_key)
        return media

    def get(self, media_id: str, owner_id: str) -> Media:
        media = self._repo.get_media(media_id, owner_id=owner_id)
        if media is None:
            raise RecordNotFoundError("media", media_id)
        return media

    def list(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[Media]:
        return self._repo.list_media(owner_id, limit=limit, offset=offset)
