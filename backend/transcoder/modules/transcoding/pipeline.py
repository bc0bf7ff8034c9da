"""Source fetcher and rendition pipeline."""

import asyncio
import contextvars
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from transcoder.core.errors import EncodeFailed, UploadFailed
from transcoder.core.logging import log_error, log_info
from transcoder.core.storage import ObjectStorage
from transcoder.modules.transcoding.ffmpeg import (
    FFmpegConfig,
    FFmpegTranscoder,
    validate_resolution_output,
)
from transcoder.modules.transcoding.schemas import (
    LocalHandle,
    RenditionResult,
    RenditionStatus,
    Resolution,
    output_name_for,
)

logger = logging.getLogger(__name__)


async def run_blocking(func: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking storage call on a daemon thread and await its result.

    Unlike asyncio.to_thread the thread is a daemon: a call abandoned at the
    rendition deadline does not hold up interpreter exit.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()
    context = contextvars.copy_context()

    def settle(result: Any, error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def target() -> None:
        try:
            outcome = (context.run(func, *args), None)
        except Exception as e:
            outcome = (None, e)
        try:
            loop.call_soon_threadsafe(settle, *outcome)
        except RuntimeError:
            # loop closed after the caller gave up on this call
            logger.debug("Discarded result of %s, event loop closed", getattr(func, "__name__", func))

    threading.Thread(target=target, name="storage-io", daemon=True).start()
    return await future


class SourceFetcher:
    """Downloads the job's source object into the working area."""

    def __init__(self, storage: ObjectStorage):
        self.storage = storage

    async def fetch(self, bucket: str, key: str, work_dir: Path) -> LocalHandle:
        """Materialize the whole source object locally.

        Raises:
            FetchFailed: If the object is missing or the transfer breaks off
        """
        suffix = Path(key).suffix or ".mp4"
        destination = Path(work_dir) / f"original-video{suffix}"
        size = await run_blocking(self.storage.download, bucket, key, destination)
        log_info(logger, "Source downloaded", bucket=bucket, object_key=key, file_size=size)
        return LocalHandle(path=destination, bucket=bucket, key=key, size=size)


class RenditionPipeline:
    """Encodes one resolution from the local source and uploads it."""

    def __init__(
        self,
        transcoder: FFmpegTranscoder,
        storage: ObjectStorage,
        destination_bucket: str,
        video_codec: str = "libx264",
        audio_codec: str = "aac",
        output_format: str = "mp4",
        verify_output: bool = False,
    ):
        self.transcoder = transcoder
        self.storage = storage
        self.destination_bucket = destination_bucket
        self.video_codec = video_codec
        self.audio_codec = audio_codec
        self.output_format = output_format
        self.verify_output = verify_output

    @property
    def content_type(self) -> str:
        return f"video/{self.output_format}"

    async def render(self, source: LocalHandle, resolution: Resolution) -> RenditionResult:
        """Encode and upload one rendition.

        Encode and upload errors come back as a failed result; they are never
        raised to the caller.
        """
        output_key = output_name_for(resolution, self.output_format)
        output_path = source.path.parent / output_key

        try:
            output = await self.transcoder.transcode(FFmpegConfig(
                input_path=source.path,
                output_path=output_path,
                resolution=resolution,
                video_codec=self.video_codec,
                audio_codec=self.audio_codec,
                output_format=self.output_format,
            ))

            if self.verify_output:
                width, height = await self.transcoder.probe_dimensions(output_path)
                if not validate_resolution_output(width, height, resolution):
                    raise EncodeFailed(
                        f"output is {width}x{height}, expected {resolution.size}",
                        resolution=resolution.name,
                    )

            upload = await run_blocking(
                self.storage.upload,
                output_path,
                self.destination_bucket,
                output_key,
                self.content_type,
            )
            if not upload.success:
                raise UploadFailed(
                    f"upload of {output_key} failed: {upload.error_message}",
                    bucket=self.destination_bucket,
                    key=output_key,
                )
        except (EncodeFailed, UploadFailed) as e:
            stderr = getattr(e, "stderr", None)
            log_error(logger, f"Rendition {resolution.name} failed: {e}",
                      resolution=resolution.name, stderr=stderr)
            return RenditionResult(
                resolution=resolution,
                output_key=output_key,
                status=RenditionStatus.FAILED,
                error_message=str(e),
            )

        log_info(logger, f"Uploaded {output_key}", resolution=resolution.name,
                 bucket=self.destination_bucket, file_size=upload.file_size)
        return RenditionResult(
            resolution=resolution,
            output_key=output_key,
            status=RenditionStatus.SUCCESS,
            file_size=output.file_size,
            etag=upload.etag,
        )
