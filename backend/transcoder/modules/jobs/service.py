"""Job status store service.

Wraps the repository in short transactions so the dispatcher loop and the
worker never hold a session across external calls.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import sessionmaker

from transcoder.core.database import create_session_factory
from transcoder.modules.jobs.models import JobRecord
from transcoder.modules.jobs.repository import JobRepository
from transcoder.modules.jobs.schemas import JobParameters


class JobStatusStore:
    """Observable job lifecycle keyed by (bucket, key)."""

    def __init__(self, session_factory: sessionmaker, stale_after_seconds: int = 7200):
        self.session_factory = session_factory
        self.stale_after = timedelta(seconds=stale_after_seconds)

    @classmethod
    def from_url(cls, url: str, stale_after_seconds: int = 7200) -> "JobStatusStore":
        return cls(create_session_factory(url), stale_after_seconds=stale_after_seconds)

    def get(self, params: JobParameters) -> Optional[JobRecord]:
        with self.session_factory() as session:
            return JobRepository(session).get(params.bucket, params.key)

    def find_active(self, params: JobParameters) -> Optional[JobRecord]:
        """Return the in-flight job for this object, if any."""
        with self.session_factory() as session:
            return JobRepository(session).find_active(params.bucket, params.key, self.stale_after)

    def record_launch(
        self,
        params: JobParameters,
        task_arn: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> JobRecord:
        with self.session_factory.begin() as session:
            return JobRepository(session).record_launch(
                params.bucket, params.key, task_arn=task_arn, message_id=message_id
            )

    def mark_running(self, params: JobParameters) -> JobRecord:
        with self.session_factory.begin() as session:
            return JobRepository(session).mark_running(params.bucket, params.key)

    def mark_completed(self, params: JobParameters) -> JobRecord:
        with self.session_factory.begin() as session:
            return JobRepository(session).mark_completed(params.bucket, params.key)

    def mark_failed(
        self,
        params: JobParameters,
        error_message: str,
        failed_resolutions: Optional[list[str]] = None,
    ) -> JobRecord:
        with self.session_factory.begin() as session:
            return JobRepository(session).mark_failed(
                params.bucket,
                params.key,
                error_message=error_message,
                failed_resolutions=failed_resolutions,
            )
