from datetime import datetime, timedelta, timezone

import pytest

from backend.core.errors import ConflictError, NotFoundError, StorageError
from backend.features.jobs import store
from backend.models.video_job import JobStatus

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_create_and_find():
    store.create_job("job-1", "alice", name="Intro", request_metadata={"voice": "v1"}, now=T0)
    job = store.find_by_provider_id("job-1")
    assert job.user_id == "alice"
    assert job.name == "Intro"
    assert job.status == JobStatus.PENDING
    assert job.request_metadata == {"voice": "v1"}
    assert job.created_at == T0
    assert job.completed_at is None


def test_missing_job_returns_none_and_get_raises():
    assert store.find_by_provider_id("nope") is None
    with pytest.raises(NotFoundError):
        store.get_job("nope")


def test_duplicate_id_is_a_conflict():
    store.create_job("job-1", "alice", now=T0)
    with pytest.raises(ConflictError):
        store.create_job("job-1", "bob", now=T0)


def test_list_by_owner_newest_first_and_scoped():
    store.create_job("old", "alice", now=T0)
    store.create_job("new", "alice", now=T0 + timedelta(minutes=5))
    store.create_job("other", "bob", now=T0 + timedelta(minutes=10))
    assert [j.job_id for j in store.list_by_owner("alice")] == ["new", "old"]
    assert store.list_by_owner("carol") == []


def test_update_status_and_result():
    store.create_job("job-1", "alice", now=T0)
    store.update_status("job-1", JobStatus.PROCESSING, now=T0 + timedelta(seconds=30))
    job = store.update_result("job-1", "https://cdn/video.mp4", completed_at=T0 + timedelta(minutes=2))
    assert job.status == JobStatus.PROCESSING
    assert job.result_url == "https://cdn/video.mp4"
    assert job.completed_at == T0 + timedelta(minutes=2)


def test_mark_completed_sets_timestamp():
    store.create_job("job-1", "alice", now=T0)
    job = store.mark_completed("job-1", now=T0 + timedelta(minutes=1))
    assert job.status == JobStatus.COMPLETED
    assert job.completed_at == T0 + timedelta(minutes=1)


def test_update_missing_job_raises_not_found():
    with pytest.raises(NotFoundError):
        store.update_status("ghost", JobStatus.FAILED)


def test_delete():
    store.create_job("job-1", "alice", now=T0)
    assert store.delete_job("job-1") is True
    assert store.delete_job("job-1") is False
    assert store.find_by_provider_id("job-1") is None


def test_storage_failures_surface_as_storage_error(monkeypatch):
    from sqlalchemy.exc import OperationalError

    from backend.core import database

    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    monkeypatch.setattr(database, "get_db_session", broken_session)
    with pytest.raises(StorageError) as exc:
        store.find_by_provider_id("job-1")
    assert exc.value.status_code == 500
