"""Transcode worker.

Fetches the source once, then runs one rendition pipeline per configured
resolution concurrently and joins all of them. Every pipeline reports a
result: encode/upload failures, deadline expiry and unexpected errors all
become failed results, so the join always completes.
"""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from transcoder.core.config import Settings
from transcoder.core.errors import FetchFailed, RenditionTimeout
from transcoder.core.logging import (
    clear_correlation_id,
    log_error,
    log_info,
    log_warning,
    set_correlation_id,
)
from transcoder.core.storage import ObjectStorage
from transcoder.modules.jobs.schemas import JobParameters
from transcoder.modules.jobs.service import JobStatusStore
from transcoder.modules.transcoding.ffmpeg import FFmpegTranscoder
from transcoder.modules.transcoding.pipeline import RenditionPipeline, SourceFetcher
from transcoder.modules.transcoding.schemas import (
    JobOutcome,
    LocalHandle,
    RenditionResult,
    RenditionStatus,
    Resolution,
    output_name_for,
    validate_resolution_set,
)

logger = logging.getLogger(__name__)


class TranscodeWorker:
    """Runs one job: fetch, fan out, join."""

    def __init__(
        self,
        fetcher: SourceFetcher,
        pipeline: RenditionPipeline,
        resolutions: list[Resolution],
        rendition_timeout: float = 1800.0,
        max_concurrency: int = 0,
        work_dir: Optional[str] = None,
        job_store: Optional[JobStatusStore] = None,
    ):
        self.fetcher = fetcher
        self.pipeline = pipeline
        self.resolutions = validate_resolution_set(list(resolutions))
        self.rendition_timeout = rendition_timeout
        self.max_concurrency = max_concurrency
        self.work_dir = work_dir
        self.job_store = job_store

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        storage: ObjectStorage,
        job_store: Optional[JobStatusStore] = None,
    ) -> "TranscodeWorker":
        transcoder = FFmpegTranscoder(settings.FFMPEG_PATH, settings.FFPROBE_PATH)
        pipeline = RenditionPipeline(
            transcoder=transcoder,
            storage=storage,
            destination_bucket=settings.UPLOAD_BUCKET_NAME,
            video_codec=settings.VIDEO_CODEC,
            audio_codec=settings.AUDIO_CODEC,
            output_format=settings.OUTPUT_FORMAT,
            verify_output=settings.VERIFY_OUTPUT_DIMENSIONS,
        )
        return cls(
            fetcher=SourceFetcher(storage),
            pipeline=pipeline,
            resolutions=settings.RESOLUTIONS,
            rendition_timeout=settings.RENDITION_TIMEOUT_SECONDS,
            max_concurrency=settings.MAX_CONCURRENT_RENDITIONS,
            work_dir=settings.WORK_DIR,
            job_store=job_store,
        )

    async def run(self, params: JobParameters) -> JobOutcome:
        """Transcode one source object into every configured resolution."""
        set_correlation_id(str(params))
        try:
            log_info(logger, "Job started", bucket=params.bucket, object_key=params.key,
                     resolutions=[r.name for r in self.resolutions])
            self._update_store("mark_running", params)

            with tempfile.TemporaryDirectory(prefix="transcode-", dir=self.work_dir) as tmp:
                try:
                    source = await self.fetcher.fetch(params.bucket, params.key, Path(tmp))
                except FetchFailed as e:
                    log_error(logger, f"Source fetch failed, aborting job: {e}",
                              bucket=params.bucket, object_key=params.key)
                    outcome = JobOutcome(bucket=params.bucket, key=params.key, error_message=str(e))
                    self._update_store("mark_failed", params, error_message=str(e))
                    return outcome

                results = await self._fan_out(source)

            outcome = JobOutcome(bucket=params.bucket, key=params.key, results=results)
            if outcome.success:
                log_info(logger, "Job completed", **outcome.summary())
                self._update_store("mark_completed", params)
            else:
                log_error(logger, f"Job failed for {', '.join(outcome.failed_resolutions)}",
                          **outcome.summary())
                self._update_store(
                    "mark_failed",
                    params,
                    error_message="renditions failed",
                    failed_resolutions=outcome.failed_resolutions,
                )
            return outcome
        finally:
            clear_correlation_id()

    async def _fan_out(self, source: LocalHandle) -> list[RenditionResult]:
        limit = self.max_concurrency if self.max_concurrency > 0 else len(self.resolutions)
        semaphore = asyncio.Semaphore(limit)
        return list(await asyncio.gather(
            *(self._run_pipeline(source, resolution, semaphore) for resolution in self.resolutions)
        ))

    async def _run_pipeline(
        self,
        source: LocalHandle,
        resolution: Resolution,
        semaphore: asyncio.Semaphore,
    ) -> RenditionResult:
        output_key = output_name_for(resolution, self.pipeline.output_format)
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self.pipeline.render(source, resolution),
                    timeout=self.rendition_timeout,
                )
            except asyncio.TimeoutError:
                error = RenditionTimeout(
                    f"rendition {resolution.name} timed out after {self.rendition_timeout:g}s",
                    resolution=resolution.name,
                )
                log_error(logger, str(error), resolution=resolution.name)
            except Exception as e:
                error = e
                log_error(logger, f"Rendition {resolution.name} crashed", e, resolution=resolution.name)

        return RenditionResult(
            resolution=resolution,
            output_key=output_key,
            status=RenditionStatus.FAILED,
            error_message=str(error),
        )

    def _update_store(self, method: str, params: JobParameters, **kwargs) -> None:
        if self.job_store is None:
            return
        try:
            getattr(self.job_store, method)(params, **kwargs)
        except SQLAlchemyError as e:
            log_warning(logger, f"Job store update {method} failed: {e}",
                        bucket=params.bucket, object_key=params.key)
