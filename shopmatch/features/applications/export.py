"""
Applications CSV export.

Collects every application submitted to the owner's jobs, newest first, and
renders it as an Excel-friendly CSV (UTF-8 BOM, header row).
"""

import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from shopmatch.core.database import get_db_session, jobs, applications, users
from shopmatch.core.errors import NotFoundError
from shopmatch.features.users.service import utc_now


COLUMNS = [
    ("job_title", "Job Title"),
    ("seeker_email", "Applicant Email"),
    ("status", "Status"),
    ("cover_letter", "Cover Letter"),
    ("applied_at", "Applied At"),
    ("last_updated", "Last Updated"),
]


@dataclass
class ExportFile:
    filename: str
    content: str
    row_count: int


def _timestamp(value) -> str:
    return value.isoformat() if isinstance(value, datetime) else ""


def render_csv(rows: List[Dict[str, object]], add_bom: bool = True) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow([header for _, header in COLUMNS])
    for row in rows:
        writer.writerow(["" if row.get(key) is None else row[key] for key, _ in COLUMNS])
    content = buffer.getvalue()
    return "\ufeff" + content if add_bom else content


class ApplicationExporter:
    def __init__(self, session_factory: sessionmaker, now_fn: Callable[[], datetime] = utc_now):
        self.session_factory = session_factory
        self.now_fn = now_fn

    def collect_rows(self, owner_id: str) -> List[Dict[str, object]]:
        """
        Rows for every application to the owner's jobs.

        Raises:
            NotFoundError: owner has no jobs, or no applications were submitted
        """
        with get_db_session(self.session_factory) as session:
            job_rows = session.execute(
                select(jobs.c.id, jobs.c.title).where(jobs.c.owner_id == owner_id)
            ).fetchall()
            if not job_rows:
                raise NotFoundError("You have not posted any jobs yet", code="no_jobs")
            titles = {row.id: row.title for row in job_rows}

            app_rows = session.execute(
                select(applications, users.c.email.label("seeker_doc_email"))
                .select_from(applications.outerjoin(users, users.c.user_id == applications.c.seeker_id))
                .where(applications.c.job_id.in_(list(titles)))
                .order_by(applications.c.created_at.desc())
            ).fetchall()

        if not app_rows:
            raise NotFoundError("No applications have been submitted to your jobs", code="no_applications")

        return [
            {
                "job_title": titles.get(row.job_id) or "Unknown Job",
                "seeker_email": row.seeker_email or row.seeker_doc_email or "N/A",
                "status": (row.status or "").capitalize(),
                "cover_letter": row.cover_letter or "",
                "applied_at": _timestamp(row.created_at),
                "last_updated": _timestamp(row.updated_at),
            }
            for row in app_rows
        ]

    def build_export(self, owner_id: str) -> ExportFile:
        rows = self.collect_rows(owner_id)
        filename = f"applications-export-{self.now_fn().date().isoformat()}.csv"
        return ExportFile(filename=filename, content=render_csv(rows), row_count=len(rows))
