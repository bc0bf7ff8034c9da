"""Repository for job status records."""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from transcoder.modules.jobs.models import ACTIVE_STATUSES, JobRecord, JobStatus, utcnow


class JobRepository:
    """Repository for JobRecord database operations."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, bucket: str, key: str) -> Optional[JobRecord]:
        """Get the record for a source object."""
        result = self.session.execute(
            select(JobRecord).where(
                JobRecord.bucket == bucket,
                JobRecord.object_key == key,
            )
        )
        return result.scalar_one_or_none()

    def find_active(
        self,
        bucket: str,
        key: str,
        stale_after: timedelta,
    ) -> Optional[JobRecord]:
        """Get the record if a job for this object is launched or running.

        Records not updated within ``stale_after`` are treated as lost tasks
        and are not returned.
        """
        cutoff = utcnow() - stale_after
        result = self.session.execute(
            select(JobRecord).where(
                JobRecord.bucket == bucket,
                JobRecord.object_key == key,
                JobRecord.status.in_(ACTIVE_STATUSES),
                JobRecord.updated_at >= cutoff,
            )
        )
        return result.scalar_one_or_none()

    def _get_or_create(self, bucket: str, key: str) -> JobRecord:
        record = self.get(bucket, key)
        if record is None:
            record = JobRecord(bucket=bucket, object_key=key, launch_count=0, failed_resolutions=[])
            self.session.add(record)
        return record

    def record_launch(
        self,
        bucket: str,
        key: str,
        task_arn: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> JobRecord:
        """Record that a worker task was started for this object."""
        record = self._get_or_create(bucket, key)
        record.status = JobStatus.LAUNCHED.value
        record.task_arn = task_arn
        record.message_id = message_id
        record.launch_count = (record.launch_count or 0) + 1
        record.failed_resolutions = []
        record.error_message = None
        record.completed_at = None
        record.updated_at = utcnow()
        self.session.flush()
        return record

    def mark_running(self, bucket: str, key: str) -> JobRecord:
        record = self._get_or_create(bucket, key)
        record.status = JobStatus.RUNNING.value
        record.updated_at = utcnow()
        self.session.flush()
        return record

    def mark_completed(self, bucket: str, key: str) -> JobRecord:
        record = self._get_or_create(bucket, key)
        now = utcnow()
        record.status = JobStatus.COMPLETED.value
        record.failed_resolutions = []
        record.error_message = None
        record.updated_at = now
        record.completed_at = now
        self.session.flush()
        return record

    def mark_failed(
        self,
        bucket: str,
        key: str,
        error_message: str,
        failed_resolutions: Optional[list[str]] = None,
    ) -> JobRecord:
        record = self._get_or_create(bucket, key)
        now = utcnow()
        record.status = JobStatus.FAILED.value
        record.failed_resolutions = list(failed_resolutions or [])
        record.error_message = error_message
        record.updated_at = now
        record.completed_at = now
        self.session.flush()
        return record
