"""FFmpeg transcoding utilities.

Runs ffmpeg/ffprobe as asyncio subprocesses so several renditions can encode
at once and a deadline can kill a stuck encoder.
"""

import asyncio
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from transcoder.core.errors import EncodeFailed
from transcoder.modules.transcoding.schemas import Resolution

_STDERR_TAIL_CHARS = 2000


@dataclass
class FFmpegConfig:
    """Configuration for one FFmpeg encode."""
    input_path: Union[str, Path]
    output_path: Union[str, Path]
    resolution: Resolution
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    output_format: str = "mp4"


@dataclass
class TranscodeOutput:
    """Result of a successful encode."""
    output_path: Path
    width: int
    height: int
    file_size: int


class FFmpegTranscoder:
    """FFmpeg-based video transcoder."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def build_transcode_command(self, config: FFmpegConfig) -> list[str]:
        """Build FFmpeg command for transcoding.

        Args:
            config: Transcoding configuration

        Returns:
            FFmpeg command as list of arguments
        """
        return [
            self.ffmpeg_path,
            "-y",  # Overwrite output
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(config.input_path),
            "-c:v", config.video_codec,
            "-c:a", config.audio_codec,
            "-s", config.resolution.size,
            "-f", config.output_format,
            str(config.output_path),
        ]

    async def transcode(self, config: FFmpegConfig) -> TranscodeOutput:
        """Encode the input to the configured resolution.

        Cancelling the awaiting task kills the ffmpeg process.

        Raises:
            EncodeFailed: If ffmpeg cannot be started or exits non-zero
        """
        name = config.resolution.name
        cmd = self.build_transcode_command(config)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncodeFailed(f"could not start ffmpeg: {e}", resolution=name) from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL_CHARS:]
            raise EncodeFailed(
                f"ffmpeg exited with code {process.returncode} for {name}",
                resolution=name,
                stderr=tail,
            )

        output_path = Path(config.output_path)
        file_size = os.path.getsize(output_path) if output_path.exists() else 0
        if file_size == 0:
            raise EncodeFailed(f"ffmpeg produced no output for {name}", resolution=name)

        return TranscodeOutput(
            output_path=output_path,
            width=config.resolution.width,
            height=config.resolution.height,
            file_size=file_size,
        )

    async def probe_dimensions(self, path: Union[str, Path]) -> tuple[int, int]:
        """Read the first video stream's dimensions with ffprobe.

        Returns:
            Tuple of (width, height), (0, 0) if no video stream was found
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            str(path),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise EncodeFailed(f"could not start ffprobe: {e}") from e

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            return 0, 0

        try:
            info = json.loads(stdout)
        except json.JSONDecodeError:
            return 0, 0

        for stream in info.get("streams", []):
            if stream.get("codec_type") == "video":
                return int(stream.get("width", 0)), int(stream.get("height", 0))
        return 0, 0


def validate_resolution_output(
    actual_width: int,
    actual_height: int,
    target_resolution: Resolution,
) -> bool:
    """Check output dimensions match the target exactly.

    The encoder is given an explicit size, so no letterboxing tolerance
    applies.
    """
    return actual_width == target_resolution.width and actual_height == target_resolution.height
