"""Job status store models.

One row per source object, keyed by (bucket, object_key). The dispatcher
writes the launch; the worker writes running and the terminal status.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transcoder.core.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops timezone info)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class JobStatus(str, Enum):
    """Job lifecycle status."""
    LAUNCHED = "launched"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (JobStatus.LAUNCHED.value, JobStatus.RUNNING.value)


class JobRecord(Base):
    """Status record for one transcode job."""

    __tablename__ = "transcode_jobs"
    __table_args__ = (
        UniqueConstraint("bucket", "object_key", name="uq_transcode_jobs_bucket_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Source object
    bucket: Mapped[str] = mapped_column(String(255), nullable=False)
    object_key: Mapped[str] = mapped_column(String(1024), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.LAUNCHED.value, nullable=False, index=True
    )

    # Launch tracking
    task_arn: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    launch_count: Mapped[int] = mapped_column(Integer, default=0)
    message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Outcome
    failed_resolutions: Mapped[list] = mapped_column(JSON, default=list)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<JobRecord {self.bucket}/{self.object_key} - {self.status}>"
