"""Tests for the FFmpeg transcoder wrapper.

Subprocess behaviour is exercised with small shell scripts standing in for
the ffmpeg binary.
"""

import asyncio
import stat
import sys
import time

import pytest
from hypothesis import given, settings, strategies as st

from transcoder.core.errors import EncodeFailed
from transcoder.modules.transcoding.ffmpeg import (
    FFmpegConfig,
    FFmpegTranscoder,
    validate_resolution_output,
)
from transcoder.modules.transcoding.schemas import Resolution

R_720P = Resolution(name="720p", width=1280, height=720)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")


def write_script(path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


class TestBuildCommand:

    def test_command_shape(self):
        transcoder = FFmpegTranscoder()
        config = FFmpegConfig(input_path="/tmp/in.mp4", output_path="/tmp/video-720p.mp4", resolution=R_720P)

        cmd = transcoder.build_transcode_command(config)

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-i") + 1] == "/tmp/in.mp4"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-s") + 1] == "1280x720"
        assert cmd[cmd.index("-f") + 1] == "mp4"
        assert cmd[-1] == "/tmp/video-720p.mp4"
        assert "-y" in cmd

    def test_custom_binary_and_codecs(self):
        transcoder = FFmpegTranscoder(ffmpeg_path="/opt/ffmpeg/bin/ffmpeg")
        config = FFmpegConfig(
            input_path="in.mov",
            output_path="out.webm",
            resolution=R_720P,
            video_codec="libvpx-vp9",
            audio_codec="libopus",
            output_format="webm",
        )

        cmd = transcoder.build_transcode_command(config)

        assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"
        assert "libvpx-vp9" in cmd
        assert "libopus" in cmd
        assert cmd[cmd.index("-f") + 1] == "webm"

    @given(
        width=st.integers(min_value=2, max_value=7680),
        height=st.integers(min_value=2, max_value=4320),
    )
    @settings(max_examples=100)
    def test_size_argument_matches_resolution(self, width, height):
        resolution = Resolution(name="custom", width=width, height=height)
        config = FFmpegConfig(input_path="in.mp4", output_path="out.mp4", resolution=resolution)

        cmd = FFmpegTranscoder().build_transcode_command(config)

        assert cmd[cmd.index("-s") + 1] == f"{width}x{height}"


class TestValidateResolutionOutput:

    @given(
        width=st.integers(min_value=1, max_value=7680),
        height=st.integers(min_value=1, max_value=4320),
    )
    @settings(max_examples=100)
    def test_exact_match_is_valid(self, width, height):
        target = Resolution(name="t", width=width, height=height)

        assert validate_resolution_output(width, height, target)

    @given(
        width=st.integers(min_value=1, max_value=7680),
        height=st.integers(min_value=1, max_value=4320),
        dw=st.integers(min_value=-50, max_value=50),
        dh=st.integers(min_value=-50, max_value=50),
    )
    @settings(max_examples=100)
    def test_any_difference_is_invalid(self, width, height, dw, dh):
        target = Resolution(name="t", width=width, height=height)
        if dw == 0 and dh == 0:
            return

        assert not validate_resolution_output(width + dw, height + dh, target)


@posix_only
class TestSubprocess:

    @pytest.mark.asyncio
    async def test_successful_encode_reports_output(self, tmp_path):
        # Last argument is the output path
        ffmpeg = write_script(tmp_path / "ffmpeg", 'for last; do :; done\nprintf "encoded" > "$last"\n')
        output = tmp_path / "video-720p.mp4"

        result = await FFmpegTranscoder(ffmpeg_path=ffmpeg).transcode(
            FFmpegConfig(input_path=tmp_path / "in.mp4", output_path=output, resolution=R_720P)
        )

        assert result.output_path == output
        assert result.file_size == len("encoded")
        assert (result.width, result.height) == (1280, 720)

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_with_stderr(self, tmp_path):
        ffmpeg = write_script(tmp_path / "ffmpeg", 'echo "Invalid data found when processing input" >&2\nexit 1\n')

        with pytest.raises(EncodeFailed) as exc_info:
            await FFmpegTranscoder(ffmpeg_path=ffmpeg).transcode(
                FFmpegConfig(input_path="in.mp4", output_path=tmp_path / "out.mp4", resolution=R_720P)
            )

        assert exc_info.value.resolution == "720p"
        assert "Invalid data found" in exc_info.value.stderr

    @pytest.mark.asyncio
    async def test_empty_output_raises(self, tmp_path):
        ffmpeg = write_script(tmp_path / "ffmpeg", "exit 0\n")

        with pytest.raises(EncodeFailed, match="no output"):
            await FFmpegTranscoder(ffmpeg_path=ffmpeg).transcode(
                FFmpegConfig(input_path="in.mp4", output_path=tmp_path / "out.mp4", resolution=R_720P)
            )

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, tmp_path):
        with pytest.raises(EncodeFailed, match="could not start ffmpeg"):
            await FFmpegTranscoder(ffmpeg_path=str(tmp_path / "nope")).transcode(
                FFmpegConfig(input_path="in.mp4", output_path=tmp_path / "out.mp4", resolution=R_720P)
            )

    @pytest.mark.asyncio
    async def test_timeout_kills_encoder(self, tmp_path):
        ffmpeg = write_script(tmp_path / "ffmpeg", "exec sleep 30\n")
        started = time.monotonic()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                FFmpegTranscoder(ffmpeg_path=ffmpeg).transcode(
                    FFmpegConfig(input_path="in.mp4", output_path=tmp_path / "out.mp4", resolution=R_720P)
                ),
                timeout=0.5,
            )

        assert time.monotonic() - started < 10

    @pytest.mark.asyncio
    async def test_probe_reads_video_stream(self, tmp_path):
        ffprobe = write_script(
            tmp_path / "ffprobe",
            "echo '{\"streams\": [{\"codec_type\": \"audio\"}, "
            "{\"codec_type\": \"video\", \"width\": 858, \"height\": 480}]}'\n",
        )

        dims = await FFmpegTranscoder(ffprobe_path=ffprobe).probe_dimensions(tmp_path / "video-480p.mp4")

        assert dims == (858, 480)

    @pytest.mark.asyncio
    async def test_probe_failure_returns_zero(self, tmp_path):
        ffprobe = write_script(tmp_path / "ffprobe", "exit 1\n")

        assert await FFmpegTranscoder(ffprobe_path=ffprobe).probe_dimensions("x.mp4") == (0, 0)
