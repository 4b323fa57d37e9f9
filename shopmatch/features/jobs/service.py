"""
Job posting service.

create_job guards against double submission: a second POST for the same owner
and title inside the duplicate window returns the job already stored instead
of inserting another row.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from shopmatch.core.database import get_db_session, jobs
from shopmatch.core.errors import DuplicateCheckError
from shopmatch.core.logging import log_event
from shopmatch.core.metrics import job_duplicate_hits_total
from shopmatch.features.jobs.models import Job, JobCreate
from shopmatch.features.users.service import utc_now


DEFAULT_DUPLICATE_WINDOW_SECONDS = 300


def _row_to_job(row) -> Job:
    return Job(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        company=row.company,
        description=row.description,
        type=row.type,
        location=row.location,
        remote=bool(row.remote),
        salary=row.salary,
        requirements=row.requirements or [],
        skills=row.skills or [],
        experience=row.experience,
        status=row.status,
        view_count=row.view_count,
        application_count=row.application_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
        published_at=row.published_at,
    )


class JobService:
    def __init__(
        self,
        session_factory: sessionmaker,
        duplicate_window_seconds: int = DEFAULT_DUPLICATE_WINDOW_SECONDS,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.duplicate_window = timedelta(seconds=duplicate_window_seconds)
        self.now_fn = now_fn

    def find_recent_duplicate(self, session, owner_id: str, title: str, now: datetime) -> Optional[Job]:
        """Newest job by owner with this exact title created inside the window."""
        row = session.execute(
            select(jobs)
            .where(
                jobs.c.owner_id == owner_id,
                jobs.c.title == title,
                jobs.c.created_at > now - self.duplicate_window,
            )
            .order_by(jobs.c.created_at.desc())
            .limit(1)
        ).first()
        return _row_to_job(row) if row else None

    def create_job(self, owner_id: str, payload: JobCreate) -> Tuple[Job, bool]:
        """
        Create a job unless an identical submission is still in the window.

        Returns:
            (job, created) where created is False for a duplicate

        Raises:
            DuplicateCheckError: If the duplicate lookup fails (nothing is inserted)
        """
        now = self.now_fn()
        with get_db_session(self.session_factory) as session:
            try:
                existing = self.find_recent_duplicate(session, owner_id, payload.title, now)
            except SQLAlchemyError as exc:
                log_event(
                    "error",
                    "jobs.duplicate_check.failed",
                    user_id=owner_id,
                    error_code="duplicate_check_failed",
                    extra={"error": exc},
                )
                raise DuplicateCheckError("Unable to verify job uniqueness, please retry") from exc

            if existing is not None:
                job_duplicate_hits_total.inc()
                log_event("info", "jobs.duplicate", user_id=owner_id, extra={"job_id": existing.id})
                return existing, False

            values = {
                "id": str(uuid4()),
                "owner_id": owner_id,
                "title": payload.title,
                "company": payload.company,
                "description": payload.description,
                "type": payload.type,
                "location": payload.location,
                "remote": payload.remote,
                "salary": payload.salary.model_dump() if payload.salary else None,
                "requirements": list(payload.requirements),
                "skills": list(payload.skills),
                "experience": payload.experience,
                "status": payload.status,
                "view_count": 0,
                "application_count": 0,
                "created_at": now,
                "updated_at": now,
                "published_at": now if payload.status == "published" else None,
            }
            session.execute(insert(jobs).values(**values))

        log_event("info", "jobs.created", user_id=owner_id, extra={"job_id": values["id"]})
        return Job(**values), True
