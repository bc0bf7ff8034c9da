"""Dispatcher polling loop.

Each iteration long-polls the queue, then handles what it received one
message at a time:

    POLLING -> RECEIVED -> DISCARDING | LAUNCHING -> ACKING -> POLLING

A message is deleted only after it was fully handled. Decode failures and
rejected launches leave it on the queue for redelivery; messages received
more than ``max_receive_count`` times go to the dead-letter queue when one is
configured.
"""

import logging
import threading
import uuid
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.exc import SQLAlchemyError

from transcoder.core.errors import LaunchRejected, MalformedPayload
from transcoder.core.logging import (
    clear_correlation_id,
    log_error,
    log_info,
    log_warning,
    set_correlation_id,
)
from transcoder.modules.dispatcher.launcher import EcsJobLauncher
from transcoder.modules.dispatcher.notifications import decode
from transcoder.modules.dispatcher.queue import SqsQueue
from transcoder.modules.dispatcher.schemas import (
    ChangeRecord,
    DispatchAction,
    DispatchResult,
    HealthCheckEvent,
    QueueMessage,
    RecordAction,
    RecordOutcome,
)
from transcoder.modules.jobs.schemas import JobParameters
from transcoder.modules.jobs.service import JobStatusStore

logger = logging.getLogger(__name__)


class CancellationToken:
    """Stop signal checked before each poll and each message."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; returns early on cancel."""
        return self._event.wait(timeout)


class Dispatcher:
    """Drains the notification queue and launches transcode jobs."""

    def __init__(
        self,
        queue: SqsQueue,
        launcher: EcsJobLauncher,
        job_store: Optional[JobStatusStore] = None,
        max_receive_count: int = 5,
        decode_keys: bool = False,
        skip_non_create_events: bool = False,
        error_pause_seconds: float = 1.0,
    ):
        self.queue = queue
        self.launcher = launcher
        self.job_store = job_store
        self.max_receive_count = max_receive_count
        self.decode_keys = decode_keys
        self.skip_non_create_events = skip_non_create_events
        self.error_pause_seconds = error_pause_seconds

    def run_forever(self, token: CancellationToken) -> None:
        """Poll until the token is cancelled."""
        logger.info("Dispatcher started on %s", self.queue.queue_url)
        while not token.cancelled:
            self.poll_once(token)
        logger.info("Dispatcher stopped")

    def poll_once(self, token: Optional[CancellationToken] = None) -> list[DispatchResult]:
        """Run one receive and handle every message it returned."""
        token = token or CancellationToken()
        try:
            messages = self.queue.receive()
        except (BotoCoreError, ClientError) as e:
            log_error(logger, "Receive from queue failed", e)
            token.wait(self.error_pause_seconds)
            return []

        if not messages:
            logger.debug("No message in queue")
            return []

        results = []
        for message in messages:
            if token.cancelled:
                log_info(logger, "Shutdown requested, leaving message for redelivery",
                         message_id=message.message_id)
                break
            try:
                results.append(self.process_message(message))
            except Exception as e:
                log_error(logger, "Unexpected error processing message", e,
                          message_id=message.message_id)
        return results

    def process_message(self, message: QueueMessage) -> DispatchResult:
        """Decode, route and acknowledge one message."""
        set_correlation_id(message.message_id or str(uuid.uuid4()))
        try:
            log_info(logger, "Message received", message_id=message.message_id,
                     receive_count=message.receive_count)

            if message.receive_count > self.max_receive_count:
                if self.queue.dead_letter_queue_url:
                    return self._dead_letter(message)
                log_warning(logger, "Message exceeded receive limit and no dead-letter queue is configured",
                            message_id=message.message_id, receive_count=message.receive_count)

            try:
                event = decode(message.body, decode_keys=self.decode_keys)
            except MalformedPayload as e:
                log_error(logger, f"Malformed message left on queue: {e}",
                          message_id=message.message_id, body=(message.body or "")[:512])
                return DispatchResult(
                    message_id=message.message_id,
                    action=DispatchAction.FAILED,
                    error_message=str(e),
                )

            if isinstance(event, HealthCheckEvent):
                self.queue.delete(message)
                log_info(logger, "Discarded health-check event", message_id=message.message_id,
                         service=event.service)
                return DispatchResult(
                    message_id=message.message_id,
                    action=DispatchAction.DISCARDED,
                    deleted=True,
                )

            outcomes = [self._dispatch_record(record, message) for record in event.records]
            rejected = [o for o in outcomes if o.action == RecordAction.REJECTED]
            if rejected:
                error = "; ".join(o.error_message or "" for o in rejected)
                log_error(logger, f"{len(rejected)} of {len(outcomes)} launches rejected, message left on queue",
                          message_id=message.message_id)
                return DispatchResult(
                    message_id=message.message_id,
                    action=DispatchAction.FAILED,
                    records=outcomes,
                    error_message=error,
                )

            self.queue.delete(message)
            log_info(logger, "Message deleted from queue", message_id=message.message_id,
                     launched=sum(1 for o in outcomes if o.action == RecordAction.LAUNCHED))
            return DispatchResult(
                message_id=message.message_id,
                action=DispatchAction.LAUNCHED,
                deleted=True,
                records=outcomes,
            )
        finally:
            clear_correlation_id()

    def _dead_letter(self, message: QueueMessage) -> DispatchResult:
        dlq_message_id = self.queue.send_to_dead_letter(message)
        self.queue.delete(message)
        log_warning(logger, "Poison message moved to dead-letter queue",
                    message_id=message.message_id, receive_count=message.receive_count,
                    dead_letter_message_id=dlq_message_id)
        return DispatchResult(
            message_id=message.message_id,
            action=DispatchAction.DEAD_LETTERED,
            deleted=True,
        )

    def _dispatch_record(self, record: ChangeRecord, message: QueueMessage) -> RecordOutcome:
        if self.skip_non_create_events and not record.is_object_created:
            log_info(logger, "Skipping non-create event", event_name=record.event_name,
                     bucket=record.bucket, object_key=record.key)
            return RecordOutcome(record=record, action=RecordAction.SKIPPED_EVENT)

        params = JobParameters(bucket=record.bucket, key=record.key)

        if self._is_redelivery(params, message.message_id):
            log_info(logger, "Redelivered message already launched this job, not launching again",
                     bucket=params.bucket, object_key=params.key)
            return RecordOutcome(record=record, action=RecordAction.SKIPPED_DUPLICATE)

        try:
            receipt = self.launcher.launch(params)
        except LaunchRejected as e:
            log_error(logger, f"Launch rejected: {e}", bucket=params.bucket, object_key=params.key)
            return RecordOutcome(record=record, action=RecordAction.REJECTED, error_message=str(e))

        self._record_launch(params, receipt.task_arn, message.message_id)
        log_info(logger, "Job launched", bucket=params.bucket, object_key=params.key,
                 event_name=record.event_name, task_arn=receipt.task_arn)
        return RecordOutcome(record=record, action=RecordAction.LAUNCHED, receipt=receipt)

    def _is_redelivery(self, params: JobParameters, message_id: str) -> bool:
        """True if this same message already launched an in-flight job for the object.

        A different message for the same object is a new upload and is always
        launched.
        """
        if self.job_store is None or not message_id:
            return False
        try:
            record = self.job_store.find_active(params)
            return record is not None and record.message_id == message_id
        except SQLAlchemyError as e:
            log_warning(logger, f"Job store lookup failed, launching anyway: {e}",
                        bucket=params.bucket, object_key=params.key)
            return False

    def _record_launch(self, params: JobParameters, task_arn: Optional[str], message_id: str) -> None:
        if self.job_store is None:
            return
        try:
            self.job_store.record_launch(params, task_arn=task_arn, message_id=message_id)
        except SQLAlchemyError as e:
            log_warning(logger, f"Could not record launch: {e}",
                        bucket=params.bucket, object_key=params.key)
