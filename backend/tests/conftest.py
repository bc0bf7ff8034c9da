"""Shared fixtures: fake AWS collaborators, local storage and a job store."""

import asyncio
import json
from pathlib import Path
from typing import Iterable, Optional
from unittest.mock import MagicMock

import pytest

from transcoder.core.errors import EncodeFailed
from transcoder.core.storage import LocalStorage
from transcoder.modules.dispatcher.queue import SqsQueue
from transcoder.modules.jobs.service import JobStatusStore
from transcoder.modules.transcoding.ffmpeg import FFmpegConfig, TranscodeOutput

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/video-events"
DLQ_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/video-events-dlq"


def s3_event_body(records: Iterable[tuple[str, str]], event_name: str = "ObjectCreated:Put") -> str:
    """Build an S3 event notification body for (bucket, key) pairs."""
    return json.dumps({
        "Records": [
            {
                "eventVersion": "2.1",
                "eventSource": "aws:s3",
                "eventName": event_name,
                "s3": {"bucket": {"name": bucket}, "object": {"key": key, "size": 1024}},
            }
            for bucket, key in records
        ]
    })


def sqs_message(body: Optional[str], message_id: str = "msg-1", receive_count: int = 1) -> dict:
    return {
        "MessageId": message_id,
        "ReceiptHandle": f"receipt-{message_id}",
        "Body": body,
        "Attributes": {"ApproximateReceiveCount": str(receive_count)},
    }


@pytest.fixture
def sqs_client() -> MagicMock:
    client = MagicMock()
    client.receive_message.return_value = {}
    client.send_message.return_value = {"MessageId": "dlq-1"}
    return client


@pytest.fixture
def queue(sqs_client) -> SqsQueue:
    return SqsQueue(sqs_client, QUEUE_URL, dead_letter_queue_url=None)


@pytest.fixture
def launcher() -> MagicMock:
    launcher = MagicMock()
    launcher.launch.side_effect = lambda params: MagicMock(
        task_arn=f"arn:aws:ecs:us-east-1:123456789012:task/video/{params.key}"
    )
    return launcher


@pytest.fixture
def job_store(tmp_path) -> JobStatusStore:
    return JobStatusStore.from_url(f"sqlite:///{tmp_path / 'jobs.db'}", stale_after_seconds=3600)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage")


@pytest.fixture
def source_object(storage) -> tuple[str, str]:
    """A source video in the local storage backend."""
    bucket, key = "raw-uploads", "clip42.mp4"
    path = storage.root / bucket / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 256)
    return bucket, key


class FakeTranscoder:
    """Stands in for ffmpeg: writes "<W>x<H>" into the output file.

    Resolutions named in ``fail`` raise EncodeFailed; those named in ``hang``
    never finish.
    """

    output_format = "mp4"

    def __init__(self, fail: Iterable[str] = (), hang: Iterable[str] = ()):
        self.fail = set(fail)
        self.hang = set(hang)
        self.calls: list[FFmpegConfig] = []

    async def transcode(self, config: FFmpegConfig) -> TranscodeOutput:
        self.calls.append(config)
        name = config.resolution.name
        if name in self.hang:
            await asyncio.sleep(3600)
        if name in self.fail:
            raise EncodeFailed(f"ffmpeg exited with code 1 for {name}", resolution=name, stderr="boom")

        data = config.resolution.size.encode()
        Path(config.output_path).write_bytes(data)
        return TranscodeOutput(
            output_path=Path(config.output_path),
            width=config.resolution.width,
            height=config.resolution.height,
            file_size=len(data),
        )

    async def probe_dimensions(self, path) -> tuple[int, int]:
        width, height = Path(path).read_text().split("x")
        return int(width), int(height)


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()
