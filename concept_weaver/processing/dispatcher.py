from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import PurePath
from typing import Any, Callable, Deque, Optional

from .enrichment import EnrichmentClient
from .errors import EnrichmentError, ExtractionTimeoutError, PipelineError
from .extraction import TextExtractor
from .models import JobRecord, JobResult, UploadMeta
from .repository import JobRepository, Transition

logger = logging.getLogger(__name__)


class JobDispatcher:
    """
    FIFO queue plus a single execution slot. Drives each job through
    queued -> processing -> done | error.

    Submission is synchronous and must happen on the event loop thread; the
    job body runs as a task on that loop, with extraction and model calls
    pushed to worker threads and bounded by timeouts. Only one job body runs
    at a time. After a job settles the next dispatch is scheduled with a short
    delay rather than started from the finishing task.
    """

    def __init__(
        self,
        repository: JobRepository,
        extractor: TextExtractor,
        enricher: EnrichmentClient,
        extraction_timeout: Optional[float] = None,
        enrichment_timeout: Optional[float] = None,
        continuation_delay: float = 0.1,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.repo = repository
        self.extractor = extractor
        self.enricher = enricher
        self.extraction_timeout = extraction_timeout
        self.enrichment_timeout = enrichment_timeout
        self.continuation_delay = continuation_delay
        self._loop = loop
        self._queue: Deque[str] = deque()
        self._busy = False
        self._current: Optional[asyncio.Task] = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    def submit(self, meta: UploadMeta, job_id: Optional[str] = None) -> JobRecord:
        job = self.repo.create(meta, job_id=job_id)
        logger.info("Job %s queued (%s, %d bytes)", job.id, job.original_name, job.size)
        self.enqueue(job.id)
        return job

    def enqueue(self, job_id: str) -> None:
        self._queue.append(job_id)
        if not self._busy:
            self.loop.call_soon(self._dispatch)

    def _dispatch(self) -> None:
        if self._busy or not self._queue:
            return
        job_id = self._queue.popleft()
        self._busy = True
        try:
            job = self.repo.transition(job_id, lambda record: record.start())
        except PipelineError as exc:
            logger.error("Could not start job %s: %s", job_id, exc)
            self._release()
            return
        logger.info("Job %s processing", job_id)
        self._current = self.loop.create_task(self._execute(job))

    def _release(self) -> None:
        self._busy = False
        self._current = None
        if self._queue:
            self.loop.call_later(self.continuation_delay, self._dispatch)

    async def _execute(self, job: JobRecord) -> None:
        try:
            result = await self._process(job)
        except asyncio.CancelledError:
            self._finish(job.id, lambda record: record.fail("Processing was cancelled"))
            raise
        except PipelineError as exc:
            message = str(exc)
            logger.warning("Job %s failed: %s", job.id, message)
            self._finish(job.id, lambda record: record.fail(message))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure while processing job %s", job.id)
            message = str(exc) or "Processing failed"
            self._finish(job.id, lambda record: record.fail(message))
        else:
            self._finish(job.id, lambda record: record.complete(result))
            logger.info("Job %s done", job.id)
        finally:
            self._release()

    def _finish(self, job_id: str, fn: Transition) -> None:
        try:
            self.repo.transition(job_id, fn)
        except PipelineError as exc:
            logger.error("Could not record outcome of job %s: %s", job_id, exc)

    async def _process(self, job: JobRecord) -> JobResult:
        declared_type = PurePath(job.original_name).suffix
        if not self.extractor.handles(declared_type) and self.extractor.handles(job.content_type):
            declared_type = job.content_type
        declared_type = declared_type or job.content_type
        extraction = await self._bounded(
            self.extractor.extract,
            job.stored_ref,
            declared_type,
            timeout=self.extraction_timeout,
            on_timeout=lambda: ExtractionTimeoutError(
                f"Text extraction timed out after {self.extraction_timeout:g} seconds"
            ),
        )

        summary = await self._bounded(
            self.enricher.summarize,
            extraction.text,
            timeout=self.enrichment_timeout,
            on_timeout=lambda: EnrichmentError(
                f"Summary generation timed out after {self.enrichment_timeout:g} seconds"
            ),
        )

        try:
            concept_map = await self._bounded(
                self.enricher.map_concepts,
                extraction.text,
                timeout=self.enrichment_timeout,
                on_timeout=lambda: EnrichmentError(
                    f"Concept map generation timed out after {self.enrichment_timeout:g} seconds"
                ),
            )
        except EnrichmentError as exc:
            logger.warning("Concept map unavailable for job %s: %s", job.id, exc)
            concept_map = None
        except Exception:  # noqa: BLE001
            logger.exception("Concept map step crashed for job %s", job.id)
            concept_map = None

        return JobResult(summary=summary, concept_map=concept_map)

    async def _bounded(
        self,
        fn: Callable[..., Any],
        *args: Any,
        timeout: Optional[float],
        on_timeout: Callable[[], PipelineError],
    ) -> Any:
        # wait_for cannot stop the worker thread; on timeout it is abandoned and
        # may still be running while the next job starts.
        call = asyncio.to_thread(fn, *args)
        if not timeout:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise on_timeout() from exc

    async def wait_idle(self, poll_interval: float = 0.01) -> None:
        """
        Resolve once the queue is empty and no job is running.
        """
        while self._busy or self._queue:
            await asyncio.sleep(poll_interval)

    async def shutdown(self) -> None:
        self._queue.clear()
        task = self._current
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
