from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from starlette.concurrency import run_in_threadpool

from src.app.domain.models import Clip
from src.app.services.clip_renderer import ClipRenderer, RenderReport

log = logging.getLogger("clip_render_queue")


@dataclass(slots=True)
class RenderJob:
    source_url: str
    clips: list[Clip]


class ClipRenderQueue:
    """
    Background worker for clip rendering.

    ``enqueue`` returns as soon as the batch is queued; a single worker task
    renders batches in order, so at most one ffmpeg pipeline runs at a time.
    """

    def __init__(self, renderer: ClipRenderer) -> None:
        self._renderer = renderer
        self._queue: "asyncio.Queue[Optional[RenderJob]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        async with self._lock:
            if self.running:
                return
            self._loop = asyncio.get_running_loop()
            self._worker = asyncio.create_task(self._run(), name="clip-render-worker")

    async def stop(self) -> None:
        async with self._lock:
            if not self._worker:
                return
            await self._queue.put(None)
            try:
                await self._worker
            finally:
                self._worker = None

    async def enqueue(self, source_url: str, clips: list[Clip]) -> None:
        if not clips:
            return
        await self._queue.put(RenderJob(source_url=source_url, clips=list(clips)))
        log.info("render.enqueued clips=%d pending_batches=%d", len(clips), self._queue.qsize())

    def submit(self, source_url: str, clips: list[Clip]) -> None:
        """Thread-safe enqueue for callers running outside the event loop."""
        if not clips:
            return
        if self._loop is None or not self.running:
            raise RuntimeError("clip render worker is not running")
        job = RenderJob(source_url=source_url, clips=list(clips))
        self._loop.call_soon_threadsafe(self._queue.put_nowait, job)
        log.info("render.submitted clips=%d", len(clips))

    async def join(self) -> None:
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            if job is None:
                self._queue.task_done()
                break
            try:
                await self._process_job(job)
            except Exception:
                log.exception("render.worker_unexpected_error source=%s", job.source_url)
            finally:
                self._queue.task_done()

    async def _process_job(self, job: RenderJob) -> RenderReport:
        return await run_in_threadpool(self._renderer.render_batch, job.source_url, job.clips)
