"""AWS client factory.

Clients are built from explicit settings and handed to the services that use
them; nothing in the package holds a process-wide client.
"""

import logging

import boto3
from botocore.config import Config

from transcoder.core.config import Settings

logger = logging.getLogger(__name__)


def _client_kwargs(settings: Settings) -> dict:
    kwargs = {"region_name": settings.AWS_REGION}

    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
        if settings.AWS_SESSION_TOKEN:
            kwargs["aws_session_token"] = settings.AWS_SESSION_TOKEN

    if settings.AWS_ENDPOINT_URL:
        kwargs["endpoint_url"] = settings.AWS_ENDPOINT_URL

    return kwargs


def get_sqs_client(settings: Settings):
    """Get SQS client. Read timeout outlasts the long-poll wait."""
    config = Config(
        read_timeout=settings.SQS_WAIT_TIME_SECONDS + 10,
        connect_timeout=10,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    client = boto3.client("sqs", config=config, **_client_kwargs(settings))
    logger.info("SQS client initialized for region %s", settings.AWS_REGION)
    return client


def get_ecs_client(settings: Settings):
    """Get ECS client."""
    config = Config(
        connect_timeout=10,
        read_timeout=30,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    client = boto3.client("ecs", config=config, **_client_kwargs(settings))
    logger.info("ECS client initialized for region %s", settings.AWS_REGION)
    return client


def get_s3_client(settings: Settings):
    """Get S3 client."""
    kwargs = _client_kwargs(settings)
    # a stalled transfer must not outlive the rendition deadline
    timeouts = {
        "connect_timeout": 10,
        "read_timeout": max(1, min(60, int(settings.RENDITION_TIMEOUT_SECONDS))),
    }
    if settings.AWS_ENDPOINT_URL:
        # MinIO / LocalStack need path style addressing
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            retries={"max_attempts": 3, "mode": "standard"},
            **timeouts,
        )
    else:
        config = Config(retries={"max_attempts": 3, "mode": "standard"}, **timeouts)
    client = boto3.client("s3", config=config, **kwargs)
    logger.info("S3 client initialized for region %s", settings.AWS_REGION)
    return client
