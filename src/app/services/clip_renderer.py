# src/app/services/clip_renderer.py
"""
Materializes suggested clips as MP4 files in the Media Store.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from src.app.domain.errors import RenderError
from src.app.domain.models import Clip
from src.app.infra.db.base import ClipRepository
from src.app.infra.media.ffmpeg import ClipExtractor, FFmpegError
from src.app.infra.storage.base import StorageProvider

logger = logging.getLogger(__name__)

CLIP_RENDER_TEMP_DIR = os.getenv("CLIP_RENDER_TEMP_DIR", "/tmp/clip-renderer")
AUDIO_EXTENSIONS = (".mp3", ".wav", ".m4a", ".ogg", ".flac", ".aac")
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class RenderReport:
    rendered: dict[str, str] = field(default_factory=dict)  # clip id -> url
    failed: dict[str, str] = field(default_factory=dict)    # clip id -> reason


def _is_audio_source(source_url: str, content_type: str) -> bool:
    if "audio" in content_type.lower():
        return True
    return urlparse(source_url).path.lower().endswith(AUDIO_EXTENSIONS)


class ClipRenderer:
    """
    Renders clips one at a time.

    The source is downloaded again for every clip and all temporary files
    of a clip are removed before the next one starts.
    """

    def __init__(
        self,
        clip_repository: ClipRepository,
        storage: StorageProvider,
        extractor: ClipExtractor,
        http_client: Optional[httpx.Client] = None,
        temp_dir: str = CLIP_RENDER_TEMP_DIR,
    ):
        self.clips = clip_repository
        self.storage = storage
        self.extractor = extractor
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(30.0, read=300.0), follow_redirects=True)
        self.temp_dir = Path(temp_dir)

    def render_batch(self, source_url: str, clips: list[Clip]) -> RenderReport:
        report = RenderReport()
        logger.info("render.batch_started clips=%d source=%s", len(clips), source_url)

        for clip in clips:
            try:
                report.rendered[clip.id] = self.render_clip(source_url, clip)
            except Exception as exc:
                report.failed[clip.id] = str(exc)
                logger.exception("render.clip_failed clip=%s", clip.id)

        logger.info(
            "render.batch_done rendered=%d failed=%d",
            len(report.rendered),
            len(report.failed),
        )
        return report

    def render_clip(self, source_url: str, clip: Clip) -> str:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix=f"clip_{clip.id}_", dir=self.temp_dir))

        try:
            logger.info("render.clip_started clip=%s window=%.2f-%.2f", clip.id, clip.start_time, clip.end_time)
            try:
                source_path, content_type = self._download(source_url, work_dir)
            except httpx.HTTPError as error:
                raise RenderError(clip.id, f"source download failed: {error}") from error
            audio_only = _is_audio_source(source_url, content_type)

            output_path = work_dir / f"clip_{clip.id}.mp4"
            try:
                mode = self.extractor.extract(
                    source=source_path,
                    output=output_path,
                    start=clip.start_time,
                    end=clip.end_time,
                    audio_only=audio_only,
                )
            except FFmpegError as error:
                raise RenderError(clip.id, str(error)) from error

            object_key = self.storage.clip_object_key(clip.id, clip.start_time, clip.end_time)
            self.storage.upload_file(object_key, output_path, "video/mp4")
            rendered_url = self.storage.get_public_url(object_key)
            self.clips.mark_rendered(clip.id, rendered_url)

            logger.info("render.clip_done clip=%s mode=%s url=%s", clip.id, mode.value, rendered_url)
            return rendered_url
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    def _download(self, source_url: str, work_dir: Path) -> tuple[Path, str]:
        suffix = Path(urlparse(source_url).path).suffix or ".bin"
        target = work_dir / f"source{suffix}"

        with self._http.stream("GET", source_url) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type", "")
            with open(target, "wb") as handle:
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    handle.write(chunk)

        return target, content_type
