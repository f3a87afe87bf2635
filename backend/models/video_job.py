"""
backend/models/video_job.py

VideoJob model: the local record of one avatar video generation request.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Client-facing lifecycle vocabulary."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    user_id: str
    name: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    result_url: Optional[str] = None
    request_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id
