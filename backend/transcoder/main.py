"""Process entry points for the dispatcher and the worker.

    transcoder-dispatcher   poll the queue and launch worker tasks
    transcoder-worker       transcode BUCKET_NAME/KEY and exit
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from transcoder.core.aws import get_ecs_client, get_s3_client, get_sqs_client
from transcoder.core.config import Settings, get_settings
from transcoder.core.logging import setup_logging
from transcoder.core.storage import S3Storage
from transcoder.modules.dispatcher.launcher import EcsJobLauncher, TaskTemplate
from transcoder.modules.dispatcher.queue import SqsQueue
from transcoder.modules.dispatcher.service import CancellationToken, Dispatcher
from transcoder.modules.jobs.schemas import JobParameters
from transcoder.modules.jobs.service import JobStatusStore
from transcoder.modules.transcoding.worker import TranscodeWorker

logger = logging.getLogger("transcoder")

EXIT_OK = 0
EXIT_JOB_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_job_store(settings: Settings) -> Optional[JobStatusStore]:
    """Open the job status store, or run without one if it is unavailable."""
    if not settings.JOB_STORE_URL:
        return None
    try:
        return JobStatusStore.from_url(
            settings.JOB_STORE_URL,
            stale_after_seconds=settings.JOB_STALE_AFTER_SECONDS,
        )
    except SQLAlchemyError as e:
        logger.warning("Job status store unavailable, continuing without it: %s", e)
        return None


def install_signal_handlers(token: CancellationToken) -> None:
    """Cancel the token on SIGINT/SIGTERM."""
    def _handle(signum, frame):
        logger.info("Received signal %s, stopping after current message", signum)
        token.cancel()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def build_dispatcher(settings: Settings) -> Dispatcher:
    queue = SqsQueue(
        get_sqs_client(settings),
        settings.SQS_QUEUE_URL,
        wait_time_seconds=settings.SQS_WAIT_TIME_SECONDS,
        max_messages=settings.SQS_MAX_MESSAGES,
        dead_letter_queue_url=settings.SQS_DEAD_LETTER_QUEUE_URL,
    )
    launcher = EcsJobLauncher(get_ecs_client(settings), TaskTemplate.from_settings(settings))
    return Dispatcher(
        queue=queue,
        launcher=launcher,
        job_store=build_job_store(settings),
        max_receive_count=settings.MAX_RECEIVE_COUNT,
        decode_keys=settings.DECODE_OBJECT_KEYS,
        skip_non_create_events=settings.SKIP_NON_CREATE_EVENTS,
    )


def run_dispatcher() -> int:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    missing = [
        name for name in ("SQS_QUEUE_URL", "ECS_CLUSTER_ARN", "ECS_TASK_DEFINITION")
        if not getattr(settings, name)
    ]
    if missing:
        logger.error("Missing required settings: %s", ", ".join(missing))
        return EXIT_CONFIG_ERROR

    dispatcher = build_dispatcher(settings)
    token = CancellationToken()
    install_signal_handlers(token)
    dispatcher.run_forever(token)
    return EXIT_OK


def run_worker() -> int:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    try:
        params = JobParameters(bucket=settings.BUCKET_NAME, key=settings.KEY)
    except ValidationError:
        logger.error("BUCKET_NAME and KEY must be set for the worker")
        return EXIT_CONFIG_ERROR

    if not settings.UPLOAD_BUCKET_NAME:
        logger.error("UPLOAD_BUCKET_NAME must be set for the worker")
        return EXIT_CONFIG_ERROR

    storage = S3Storage(get_s3_client(settings))
    worker = TranscodeWorker.from_settings(settings, storage, job_store=build_job_store(settings))
    outcome = asyncio.run(worker.run(params))
    return EXIT_OK if outcome.success else EXIT_JOB_FAILED


def dispatcher_entrypoint() -> None:
    sys.exit(run_dispatcher())


def worker_entrypoint() -> None:
    sys.exit(run_worker())


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="S3 video transcoder")
    parser.add_argument("role", choices=["dispatcher", "worker"])
    args = parser.parse_args(argv)
    if args.role == "dispatcher":
        return run_dispatcher()
    return run_worker()


if __name__ == "__main__":
    sys.exit(main())
