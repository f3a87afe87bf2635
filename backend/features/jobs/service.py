"""
backend/features/jobs/service.py

Video job lifecycle.

States: pending -> processing -> {completed | failed}, plus a client-driven
delete that removes the local record regardless of provider state.

Handles:
- create: admission, provider submit, job record, usage (in that order)
- refresh: provider status poll projected onto the local record
- complete: explicit client-driven finalization
- delete: best-effort provider cancel, then local removal
- list: owner-scoped jobs, newest first, with derived progress

Status refresh is pull-based; nothing polls the provider in the background.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4
import logging

from backend.core.config import settings
from backend.core.database import utc_now
from backend.core.errors import AuthorizationError, ProviderError, ValidationError
from backend.core.logging import log_event
from backend.core.metrics import video_jobs_created_total, video_jobs_deleted_total
from backend.features.avatar.provider import AvatarProvider, SynthesisRequest
from backend.features.avatar.status import NormalizedStatus, describe_stored, normalize, normalize_raw_status
from backend.features.entitlements.service import (
    current_subscription,
    enforce_admission,
    record_usage,
)
from backend.features.jobs import store
from backend.features.plans.service import plan_for
from backend.models.video_job import JobStatus, VideoJob


logger = logging.getLogger("vidify")


def _threshold() -> int:
    return settings.PROCESSING_AUDIO_THRESHOLD_SECONDS


def _owned_job(user_id: str, job_id: str) -> VideoJob:
    """
    Load a job and check the caller owns it.

    Raises:
        NotFoundError: No job with this id
        AuthorizationError: The job belongs to someone else
    """
    job = store.get_job(job_id)
    if not job.is_owned_by(user_id):
        log_event("warning", "job.forbidden", user_id=user_id, job_id=job_id,
                  event_type="job.forbidden", error_code=AuthorizationError.code)
        raise AuthorizationError("Forbidden", details="You do not have access to this video")
    return job


def create_video_job(
    user_id: str,
    provider: AvatarProvider,
    *,
    script: str,
    voice: str,
    name: Optional[str] = None,
    avatar: Optional[str] = None,
    avatar_style: Optional[str] = None,
    background_color: Optional[str] = None,
    background_image: Optional[str] = None,
    locale: str = "en-US",
    now: Optional[datetime] = None,
) -> VideoJob:
    """
    Admit, submit, record, and charge one generation request.

    Admission denials and provider failures leave no job record and do not
    consume quota.

    Raises:
        ValidationError: Blank script or voice
        SubscriptionInactiveError, QuotaExceeded, LengthLimitExceeded: Admission denied
        ProviderUnavailable, ProviderRejected: Provider submit failed
        StorageError: Persistence failed
    """
    if not script or not script.strip():
        raise ValidationError("Invalid request", details="script is required")
    if not voice or not voice.strip():
        raise ValidationError("Invalid request", details="voice is required")

    now = now or utc_now()
    subscription = current_subscription(user_id, now=now)
    plan = plan_for(subscription.plan)
    decision = enforce_admission(subscription, plan, script)

    job_id = str(uuid4())
    request = SynthesisRequest(
        job_id=job_id,
        script=script,
        voice=voice,
        avatar=avatar,
        avatar_style=avatar_style,
        background_color=background_color,
        background_image=background_image,
        locale=locale or "en-US",
        quality=plan.video_quality,
        watermark=plan.watermark,
    )

    try:
        handle = provider.submit(request)
    except ProviderError as e:
        log_event("error", "job.submit_failed", user_id=user_id, job_id=job_id,
                  event_type="job.submit_failed", error_code=e.code,
                  extra={"upstream_status": e.upstream_status})
        raise

    metadata: Dict[str, Any] = {
        "voice": voice,
        "avatar": request.avatar,
        "avatarStyle": request.avatar_style,
        "background": {"color": background_color, "image": background_image},
        "locale": request.locale,
        "planType": plan.tier.value,
        "estimatedLength": decision.estimated_length,
        "providerCreatedAt": handle.created_at.isoformat(),
    }
    try:
        job = store.create_job(
            handle.job_id,
            user_id,
            name=name,
            request_metadata=metadata,
            status=normalize_raw_status(handle.raw_status),
            now=now,
        )
    except Exception:
        # Do not leave an orphaned provider job nobody can see or delete
        try:
            provider.cancel(handle.job_id)
        except ProviderError as e:
            logger.warning("job.cancel_failed", extra={"job_id": handle.job_id, "error_code": e.code})
        raise

    record_usage(subscription, now=now)
    video_jobs_created_total.inc(labels={"plan": plan.tier.value})
    log_event("info", "job.created", user_id=user_id, job_id=job.job_id, event_type="job.created",
              extra={"plan": plan.tier.value, "status": job.status.value})
    return job


def refresh_job(
    user_id: str,
    job_id: str,
    provider: AvatarProvider,
    now: Optional[datetime] = None,
) -> Tuple[VideoJob, NormalizedStatus]:
    """
    Project the provider's current state onto the local job record.

    Safe to call any number of times: it never touches usage, and a repeat
    with an unchanged provider response only advances updated_at.
    A provider failure leaves the record untouched.
    """
    job = _owned_job(user_id, job_id)
    now = now or utc_now()

    provider_status = provider.fetch_status(job.job_id)
    normalized = normalize(provider_status.raw_status, job.created_at, now=now, threshold_seconds=_threshold())

    if job.status == JobStatus.COMPLETED and normalized.status != JobStatus.COMPLETED:
        # Client-driven completion is final; a lagging provider must not reopen it
        return job, describe_stored(job.status, job.created_at, now=now, threshold_seconds=_threshold())

    job = store.update_status(job.job_id, normalized.status, now=now)

    if normalized.status == JobStatus.COMPLETED and provider_status.result_url:
        already_recorded = (
            job.result_url == provider_status.result_url and job.completed_at is not None
        )
        if not already_recorded:
            job = store.update_result(
                job.job_id,
                provider_status.result_url,
                completed_at=provider_status.last_action_at or now,
                now=now,
            )
            log_event("info", "job.completed", user_id=user_id, job_id=job.job_id, event_type="job.completed")
    elif normalized.status == JobStatus.FAILED:
        log_event("warning", "job.failed", user_id=user_id, job_id=job.job_id, event_type="job.failed",
                  extra={"provider_error": provider_status.error_message})

    return job, normalized


def complete_job(user_id: str, job_id: str, now: Optional[datetime] = None) -> VideoJob:
    """Mark a job completed regardless of provider state (owner only)."""
    _owned_job(user_id, job_id)
    job = store.mark_completed(job_id, now=now or utc_now())
    log_event("info", "job.completed_by_client", user_id=user_id, job_id=job_id,
              event_type="job.completed_by_client")
    return job


def delete_video_job(user_id: str, job_id: str, provider: AvatarProvider) -> None:
    """
    Delete a job (owner only).

    The provider-side cancel is best-effort; the local record is removed
    even when it fails.
    """
    _owned_job(user_id, job_id)
    try:
        cancelled = provider.cancel(job_id)
    except ProviderError as e:
        cancelled = False
        logger.warning("job.cancel_failed", extra={"job_id": job_id, "error_code": e.code})
    store.delete_job(job_id)
    video_jobs_deleted_total.inc()
    log_event("info", "job.deleted", user_id=user_id, job_id=job_id, event_type="job.deleted",
              extra={"provider_cancelled": cancelled})


def list_jobs(user_id: str, now: Optional[datetime] = None) -> List[Tuple[VideoJob, NormalizedStatus]]:
    now = now or utc_now()
    return [
        (job, describe_stored(job.status, job.created_at, now=now, threshold_seconds=_threshold()))
        for job in store.list_by_owner(user_id)
    ]


def job_view(job: VideoJob, normalized: Optional[NormalizedStatus] = None) -> Dict[str, Any]:
    """Client-facing representation of a job."""
    normalized = normalized or describe_stored(job.status, job.created_at, threshold_seconds=_threshold())
    return {
        "id": job.job_id,
        "name": job.name,
        "status": job.status.value,
        "detailedStatus": normalized.detailed_status,
        "progress": normalized.progress,
        "videoUrl": job.result_url,
        "createdDate": job.created_at.isoformat(),
        "lastUpdated": job.updated_at.isoformat(),
        "completedDate": job.completed_at.isoformat() if job.completed_at else None,
    }
