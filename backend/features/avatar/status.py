"""
Provider status normalization.

Maps the provider's raw lifecycle states onto the four-state client
vocabulary and derives a progress percentage. Progress is a fixed table
lookup for progress bars, not a measurement.
"""
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from backend.core.database import ensure_utc, utc_now
from backend.models.video_job import JobStatus

PROCESSING_AUDIO = "processing-audio"
DEFAULT_PROCESSING_AUDIO_THRESHOLD_SECONDS = 60

RAW_STATUS_MAP: Mapping[str, JobStatus] = MappingProxyType({
    "NotStarted": JobStatus.PENDING,
    "Running": JobStatus.PROCESSING,
    "Succeeded": JobStatus.COMPLETED,
    "Failed": JobStatus.FAILED,
})

PROGRESS_BY_DETAIL: Mapping[str, int] = MappingProxyType({
    JobStatus.PENDING.value: 10,
    JobStatus.PROCESSING.value: 40,
    PROCESSING_AUDIO: 75,
    JobStatus.COMPLETED.value: 100,
    JobStatus.FAILED.value: 100,
})


@dataclass(frozen=True)
class NormalizedStatus:
    status: JobStatus
    detailed_status: str
    progress: int


def normalize_raw_status(raw_status: Optional[str]) -> JobStatus:
    """Unknown raw states count as processing."""
    return RAW_STATUS_MAP.get(raw_status or "", JobStatus.PROCESSING)


def refine(
    status: JobStatus,
    created_at: Optional[datetime],
    now: Optional[datetime] = None,
    threshold_seconds: int = DEFAULT_PROCESSING_AUDIO_THRESHOLD_SECONDS,
) -> str:
    """Detailed label: "processing-audio" once a processing job has run past the threshold."""
    if status != JobStatus.PROCESSING or created_at is None:
        return status.value
    elapsed = (ensure_utc(now or utc_now()) - ensure_utc(created_at)).total_seconds()
    if elapsed > threshold_seconds:
        return PROCESSING_AUDIO
    return status.value


def normalize(
    raw_status: Optional[str],
    created_at: Optional[datetime],
    now: Optional[datetime] = None,
    threshold_seconds: int = DEFAULT_PROCESSING_AUDIO_THRESHOLD_SECONDS,
) -> NormalizedStatus:
    status = normalize_raw_status(raw_status)
    if raw_status not in RAW_STATUS_MAP:
        return NormalizedStatus(status=status, detailed_status=status.value, progress=0)
    detail = refine(status, created_at, now=now, threshold_seconds=threshold_seconds)
    return NormalizedStatus(status=status, detailed_status=detail, progress=PROGRESS_BY_DETAIL.get(detail, 0))


def describe_stored(
    status: JobStatus,
    created_at: Optional[datetime],
    now: Optional[datetime] = None,
    threshold_seconds: int = DEFAULT_PROCESSING_AUDIO_THRESHOLD_SECONDS,
) -> NormalizedStatus:
    """Same as normalize() but starting from an already-normalized stored status."""
    detail = refine(status, created_at, now=now, threshold_seconds=threshold_seconds)
    return NormalizedStatus(status=status, detailed_status=detail, progress=PROGRESS_BY_DETAIL.get(detail, 0))
