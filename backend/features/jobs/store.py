"""
backend/features/jobs/store.py

Job record store: persistence for VideoJob rows.

Records are keyed by the same id the synthesis provider knows the job by.
Every storage failure surfaces as StorageError; a duplicate job id surfaces
as ConflictError.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.core.database import ensure_utc, get_db_session, storage_session, utc_now, video_jobs
from backend.core.errors import ConflictError, NotFoundError, StorageError
from backend.models.video_job import JobStatus, VideoJob


def _row_to_job(row) -> VideoJob:
    return VideoJob(
        job_id=row.job_id,
        user_id=row.user_id,
        name=row.name,
        status=JobStatus(row.status),
        result_url=row.result_url,
        request_metadata=row.request_metadata or {},
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        completed_at=ensure_utc(row.completed_at),
    )


def create_job(
    job_id: str,
    user_id: str,
    *,
    name: Optional[str] = None,
    request_metadata: Optional[Dict[str, Any]] = None,
    status: JobStatus = JobStatus.PENDING,
    now: Optional[datetime] = None,
) -> VideoJob:
    """
    Insert a new job record.

    Raises:
        ConflictError: A record with this job_id already exists
        StorageError: The store is unavailable
    """
    now = now or utc_now()
    values = {
        "job_id": job_id,
        "user_id": user_id,
        "name": name,
        "status": status.value,
        "request_metadata": dict(request_metadata or {}),
        "created_at": now,
        "updated_at": now,
    }
    try:
        with get_db_session() as session:
            session.execute(insert(video_jobs).values(**values))
    except IntegrityError as e:
        raise ConflictError("Job already exists", details=f"A job with id {job_id} already exists") from e
    except SQLAlchemyError as e:
        raise StorageError("Storage failure", details="Could not save video job. Please retry.") from e

    return VideoJob(
        job_id=job_id,
        user_id=user_id,
        name=name,
        status=status,
        request_metadata=values["request_metadata"],
        created_at=now,
        updated_at=now,
    )


def find_by_provider_id(job_id: str) -> Optional[VideoJob]:
    with storage_session("load video job") as session:
        row = session.execute(select(video_jobs).where(video_jobs.c.job_id == job_id)).first()
        return _row_to_job(row) if row else None


def get_job(job_id: str) -> VideoJob:
    """find_by_provider_id() that raises NotFoundError instead of returning None."""
    job = find_by_provider_id(job_id)
    if job is None:
        raise NotFoundError("Video not found", details=f"No video job with id {job_id}")
    return job


def list_by_owner(user_id: str, limit: Optional[int] = None) -> List[VideoJob]:
    """All of a user's jobs, newest first."""
    stmt = (
        select(video_jobs)
        .where(video_jobs.c.user_id == user_id)
        .order_by(video_jobs.c.created_at.desc(), video_jobs.c.job_id.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    with storage_session("list video jobs") as session:
        return [_row_to_job(row) for row in session.execute(stmt).fetchall()]


def _update(job_id: str, operation: str, values: Dict[str, Any]) -> VideoJob:
    with storage_session(operation) as session:
        result = session.execute(
            update(video_jobs).where(video_jobs.c.job_id == job_id).values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError("Video not found", details=f"No video job with id {job_id}")
        row = session.execute(select(video_jobs).where(video_jobs.c.job_id == job_id)).first()
        return _row_to_job(row)


def update_status(job_id: str, status: JobStatus, now: Optional[datetime] = None) -> VideoJob:
    return _update(job_id, "update video job", {"status": status.value, "updated_at": now or utc_now()})


def update_result(
    job_id: str,
    result_url: Optional[str],
    completed_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> VideoJob:
    """Store the result URL and completion time. The status is left to the caller."""
    now = now or utc_now()
    return _update(
        job_id,
        "update video job",
        {"result_url": result_url, "completed_at": completed_at or now, "updated_at": now},
    )


def mark_completed(
    job_id: str,
    result_url: Optional[str] = None,
    completed_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> VideoJob:
    now = now or utc_now()
    values: Dict[str, Any] = {
        "status": JobStatus.COMPLETED.value,
        "completed_at": completed_at or now,
        "updated_at": now,
    }
    if result_url is not None:
        values["result_url"] = result_url
    return _update(job_id, "complete video job", values)


def delete_job(job_id: str) -> bool:
    """Remove a job record. Returns False when nothing was deleted."""
    with storage_session("delete video job") as session:
        result = session.execute(delete(video_jobs).where(video_jobs.c.job_id == job_id))
        return result.rowcount > 0
