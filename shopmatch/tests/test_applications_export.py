"""Tests for the rate-limited applications CSV export."""

import csv
import io
from datetime import timedelta

import pytest
from sqlalchemy import insert

from shopmatch.core.database import applications, get_db_session, jobs
from shopmatch.core.metrics import ratelimit_block_total
from shopmatch.features.applications.export import ApplicationExporter, render_csv
from shopmatch.core.errors import NotFoundError
from shopmatch.tests.helpers import auth_headers


EXPORT_URL = "/api/applications/export"
QUOTA_URL = "/api/applications/export/quota"


@pytest.fixture
def seed_job(session_factory, fake_now):
    def _seed(job_id, owner_id, title="Backend Engineer"):
        now = fake_now()
        with get_db_session(session_factory) as session:
            session.execute(
                insert(jobs).values(
                    id=job_id,
                    owner_id=owner_id,
                    title=title,
                    company="Acme",
                    description="x" * 60,
                    type="full-time",
                    location="Remote",
                    remote=True,
                    status="published",
                    created_at=now,
                    updated_at=now,
                )
            )
        return job_id

    return _seed


@pytest.fixture
def seed_application(session_factory, fake_now):
    def _seed(app_id, job_id, owner_id, seeker_id, *, status="pending", cover_letter="Hello", seeker_email=None, age_minutes=0):
        created = fake_now() - timedelta(minutes=age_minutes)
        with get_db_session(session_factory) as session:
            session.execute(
                insert(applications).values(
                    id=app_id,
                    job_id=job_id,
                    owner_id=owner_id,
                    seeker_id=seeker_id,
                    seeker_email=seeker_email,
                    status=status,
                    cover_letter=cover_letter,
                    created_at=created,
                    updated_at=created,
                )
            )
        return app_id

    return _seed


@pytest.fixture
def owner_with_applications(create_test_user, seed_job, seed_application):
    create_test_user("owner_1", role="owner")
    create_test_user("seeker_1", role="seeker", email="seeker1@example.com")
    seed_job("job_1", "owner_1", title="Backend Engineer")
    seed_application("app_1", "job_1", "owner_1", "seeker_1", status="pending", age_minutes=30)
    seed_application(
        "app_2", "job_1", "owner_1", "seeker_2",
        status="reviewed", cover_letter='Line one, "quoted"\nline two', seeker_email="direct@example.com",
    )
    return "owner_1"


def parse_csv(text):
    assert text.startswith("\ufeff")
    return list(csv.reader(io.StringIO(text[1:])))


def test_export_returns_csv_with_rate_limit_headers(client, owner_with_applications):
    resp = client.get(EXPORT_URL, headers=auth_headers("owner_1"))

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["content-disposition"].startswith('attachment; filename="applications-export-')
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "4"

    rows = parse_csv(resp.text)
    assert rows[0] == ["Job Title", "Applicant Email", "Status", "Cover Letter", "Applied At", "Last Updated"]
    # newest first
    assert rows[1][:3] == ["Backend Engineer", "direct@example.com", "Reviewed"]
    assert rows[1][3] == 'Line one, "quoted"\nline two'
    assert rows[2][:3] == ["Backend Engineer", "seeker1@example.com", "Pending"]


def test_sixth_export_in_an_hour_is_rejected(client, owner_with_applications, fake_time):
    headers = auth_headers("owner_1")
    for _ in range(5):
        assert client.get(EXPORT_URL, headers=headers).status_code == 200
        fake_time.advance(60)

    resp = client.get(EXPORT_URL, headers=headers)

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == str(3600 - 300)
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    body = resp.json()
    assert body["error"]["code"] == "rate_limited"
    details = body["error"]["details"]
    assert details["retry_after"] == 3600 - 300
    assert details["limit"] == 5
    assert details["remaining"] == 0
    assert details["reset"] == int(resp.headers["X-RateLimit-Reset"])
    assert ratelimit_block_total.value({"scope": "applications_export"}) == 1

    fake_time.advance(3600 - 300)
    assert client.get(EXPORT_URL, headers=headers).status_code == 200


def test_quota_preview_does_not_consume(client, owner_with_applications):
    headers = auth_headers("owner_1")

    for _ in range(3):
        quota = client.get(QUOTA_URL, headers=headers).json()
        assert quota["remaining"] == 5
        assert quota["allowed"] is True

    client.get(EXPORT_URL, headers=headers)

    assert client.get(QUOTA_URL, headers=headers).json()["remaining"] == 4


def test_limits_are_per_user(client, owner_with_applications, create_test_user, seed_job, seed_application):
    create_test_user("owner_2", role="owner")
    seed_job("job_2", "owner_2")
    seed_application("app_3", "job_2", "owner_2", "seeker_1")
    for _ in range(5):
        client.get(EXPORT_URL, headers=auth_headers("owner_1"))

    assert client.get(EXPORT_URL, headers=auth_headers("owner_1")).status_code == 429
    assert client.get(EXPORT_URL, headers=auth_headers("owner_2")).status_code == 200


def test_export_requires_owner_role(client, create_test_user):
    create_test_user("seeker_1", role="seeker")

    resp = client.get(EXPORT_URL, headers=auth_headers("seeker_1"))

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"


def test_export_without_jobs_is_404(client, create_test_user):
    create_test_user("owner_1", role="owner")

    resp = client.get(EXPORT_URL, headers=auth_headers("owner_1"))

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "no_jobs"


def test_export_without_applications_is_404(client, create_test_user, seed_job):
    create_test_user("owner_1", role="owner")
    seed_job("job_1", "owner_1")

    resp = client.get(EXPORT_URL, headers=auth_headers("owner_1"))

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "no_applications"


def test_exporter_only_includes_own_jobs(session_factory, fake_now, create_test_user, seed_job, seed_application):
    create_test_user("owner_1")
    create_test_user("owner_2")
    seed_job("job_1", "owner_1", title="Mine")
    seed_job("job_2", "owner_2", title="Theirs")
    seed_application("app_1", "job_1", "owner_1", "ghost_seeker")
    seed_application("app_2", "job_2", "owner_2", "ghost_seeker")

    rows = ApplicationExporter(session_factory, now_fn=fake_now).collect_rows("owner_1")

    assert [row["job_title"] for row in rows] == ["Mine"]
    assert rows[0]["seeker_email"] == "N/A"


def test_exporter_raises_not_found_for_unknown_owner(session_factory):
    with pytest.raises(NotFoundError):
        ApplicationExporter(session_factory).collect_rows("nobody")


def test_render_csv_without_bom():
    content = render_csv([{"job_title": "A", "status": "Pending"}], add_bom=False)

    assert content.splitlines()[1] == "A,,Pending,,,"
