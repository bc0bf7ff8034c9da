"""Notification decoder.

Turns a raw queue message body into a HealthCheckEvent or a
StorageChangeEvent. Object keys are mapped verbatim unless key decoding is
enabled; S3 URL-encodes keys in event notifications (spaces arrive as "+").
"""

import json
from urllib.parse import unquote_plus

from pydantic import ValidationError

from transcoder.core.errors import MalformedPayload
from transcoder.modules.dispatcher.schemas import (
    HEALTH_CHECK_EVENT,
    ChangeRecord,
    HealthCheckEvent,
    NotificationEvent,
    S3EventNotification,
    StorageChangeEvent,
)


def decode(body: str, decode_keys: bool = False) -> NotificationEvent:
    """Decode a queue message body.

    Args:
        body: Raw message body
        decode_keys: URL-decode object keys

    Returns:
        HealthCheckEvent or StorageChangeEvent

    Raises:
        MalformedPayload: If the body is not JSON or lacks the required shape
    """
    if not body:
        raise MalformedPayload("empty message body")

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedPayload(f"body is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedPayload(f"body must be a JSON object, got {type(data).__name__}")

    if "Service" in data and "Event" in data and data["Event"] == HEALTH_CHECK_EVENT:
        return HealthCheckEvent(service=str(data["Service"]), event=data["Event"])

    if "Records" not in data:
        raise MalformedPayload("body has no Records")

    try:
        notification = S3EventNotification.model_validate(data)
    except ValidationError as e:
        raise MalformedPayload(f"invalid storage notification: {e.error_count()} error(s)") from e

    records = []
    for record in notification.Records:
        key = record.s3.object.key
        if decode_keys:
            key = unquote_plus(key)
        records.append(ChangeRecord(
            event_name=record.eventName,
            bucket=record.s3.bucket.name,
            key=key,
        ))

    return StorageChangeEvent(records=tuple(records))
