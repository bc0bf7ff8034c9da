"""SQS notification queue adapter."""

import logging
from typing import Optional

from transcoder.modules.dispatcher.schemas import QueueMessage

logger = logging.getLogger(__name__)


class SqsQueue:
    """Receive/delete primitives over one SQS queue."""

    def __init__(
        self,
        sqs_client,
        queue_url: str,
        wait_time_seconds: int = 20,
        max_messages: int = 1,
        dead_letter_queue_url: Optional[str] = None,
    ):
        self._client = sqs_client
        self.queue_url = queue_url
        self.wait_time_seconds = wait_time_seconds
        self.max_messages = max_messages
        self.dead_letter_queue_url = dead_letter_queue_url

    def receive(self) -> list[QueueMessage]:
        """Long-poll for messages. Returns an empty list when none arrive."""
        response = self._client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.max_messages,
            WaitTimeSeconds=self.wait_time_seconds,
            AttributeNames=["ApproximateReceiveCount"],
        )
        return [QueueMessage.from_sqs(m) for m in response.get("Messages") or []]

    def delete(self, message: QueueMessage) -> None:
        self._client.delete_message(
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt_handle,
        )
        logger.debug("Deleted message %s", message.message_id)

    def send_to_dead_letter(self, message: QueueMessage) -> str:
        """Forward the raw body to the dead-letter queue.

        Returns:
            Message id assigned by the dead-letter queue
        """
        if not self.dead_letter_queue_url:
            raise ValueError("no dead-letter queue configured")

        response = self._client.send_message(
            QueueUrl=self.dead_letter_queue_url,
            MessageBody=message.body or "<empty>",
            MessageAttributes={
                "source_message_id": {"DataType": "String", "StringValue": message.message_id or "unknown"},
                "receive_count": {"DataType": "Number", "StringValue": str(message.receive_count)},
            },
        )
        return response.get("MessageId", "")
