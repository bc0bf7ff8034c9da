"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
The same settings class serves the dispatcher and the worker; each process
only reads the fields it needs.
"""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from transcoder.modules.transcoding.schemas import (
    DEFAULT_RESOLUTIONS,
    Resolution,
    validate_resolution_set,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # AWS Core
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None
    AWS_ENDPOINT_URL: Optional[str] = None  # LocalStack / MinIO

    # Messaging (SQS)
    SQS_QUEUE_URL: str = ""
    SQS_WAIT_TIME_SECONDS: int = 20
    SQS_MAX_MESSAGES: int = 1
    SQS_DEAD_LETTER_QUEUE_URL: Optional[str] = None
    MAX_RECEIVE_COUNT: int = 5
    DECODE_OBJECT_KEYS: bool = False
    SKIP_NON_CREATE_EVENTS: bool = False

    # Task execution (ECS)
    ECS_CLUSTER_ARN: str = ""
    ECS_TASK_DEFINITION: str = ""
    ECS_CONTAINER_NAME: str = "video-transcoder"
    ECS_LAUNCH_TYPE: str = "FARGATE"
    ECS_SECURITY_GROUP: str = ""
    ECS_SUBNETS: str = ""  # comma separated subnet ids
    ECS_ASSIGN_PUBLIC_IP: bool = True

    # Job input (set by the dispatcher on the worker container)
    BUCKET_NAME: str = ""
    KEY: str = ""

    # Storage
    UPLOAD_BUCKET_NAME: str = ""
    WORK_DIR: Optional[str] = None

    # Transcoding
    RESOLUTIONS: list[Resolution] = DEFAULT_RESOLUTIONS
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    VIDEO_CODEC: str = "libx264"
    AUDIO_CODEC: str = "aac"
    OUTPUT_FORMAT: str = "mp4"
    VERIFY_OUTPUT_DIMENSIONS: bool = False
    RENDITION_TIMEOUT_SECONDS: float = 1800.0
    MAX_CONCURRENT_RENDITIONS: int = 0  # 0 = all resolutions in parallel

    # Job status store
    JOB_STORE_URL: str = ""  # shared database; empty disables the store
    JOB_STALE_AFTER_SECONDS: int = 7200

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @field_validator("RESOLUTIONS")
    @classmethod
    def _check_resolutions(cls, value: list[Resolution]) -> list[Resolution]:
        return validate_resolution_set(value)

    @property
    def subnet_ids(self) -> list[str]:
        return [s.strip() for s in self.ECS_SUBNETS.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process."""
    return Settings()
