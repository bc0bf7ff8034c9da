"""Schemas for queue messages and decoded storage notifications."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

HEALTH_CHECK_EVENT = "s3.TestEvent"
OBJECT_CREATED_PREFIX = "ObjectCreated:"


@dataclass(frozen=True)
class QueueMessage:
    """A message received from the notification queue. Never mutated."""
    message_id: str
    receipt_handle: str
    body: Optional[str]
    receive_count: int = 1

    @classmethod
    def from_sqs(cls, message: dict) -> "QueueMessage":
        attributes = message.get("Attributes") or {}
        return cls(
            message_id=message.get("MessageId", ""),
            receipt_handle=message["ReceiptHandle"],
            body=message.get("Body"),
            receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
        )


# S3 event notification shape

class S3Bucket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)


class S3Object(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = Field(..., min_length=1)


class S3Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bucket: S3Bucket
    object: S3Object


class S3EventRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    eventName: str = ""
    s3: S3Entity


class S3EventNotification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Records: list[S3EventRecord]


# Decoded events

class ChangeRecord(BaseModel):
    """One storage change: the operation and the object it touched."""
    model_config = ConfigDict(frozen=True)

    event_name: str
    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)

    @property
    def is_object_created(self) -> bool:
        return self.event_name.startswith(OBJECT_CREATED_PREFIX)


class HealthCheckEvent(BaseModel):
    """Synthetic test message sent when a bucket notification is configured."""
    model_config = ConfigDict(frozen=True)

    service: str
    event: str = HEALTH_CHECK_EVENT


class StorageChangeEvent(BaseModel):
    """A real storage notification with its records in order."""
    model_config = ConfigDict(frozen=True)

    records: tuple[ChangeRecord, ...] = ()


NotificationEvent = Union[HealthCheckEvent, StorageChangeEvent]


@dataclass(frozen=True)
class LaunchReceipt:
    """Opaque acknowledgement of a started worker task."""
    task_arns: tuple[str, ...] = ()

    @property
    def task_arn(self) -> Optional[str]:
        return self.task_arns[0] if self.task_arns else None


class DispatchAction(str, Enum):
    """What the dispatcher did with a message."""
    DISCARDED = "discarded"
    LAUNCHED = "launched"
    DEAD_LETTERED = "dead_lettered"
    FAILED = "failed"


class RecordAction(str, Enum):
    LAUNCHED = "launched"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_EVENT = "skipped_event"
    REJECTED = "rejected"


@dataclass
class RecordOutcome:
    record: ChangeRecord
    action: RecordAction
    receipt: Optional[LaunchReceipt] = None
    error_message: Optional[str] = None


@dataclass
class DispatchResult:
    """Outcome of processing one queue message."""
    message_id: str
    action: DispatchAction
    deleted: bool = False
    records: list[RecordOutcome] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def launch_count(self) -> int:
        return sum(1 for r in self.records if r.action == RecordAction.LAUNCHED)
