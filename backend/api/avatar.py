"""
Avatar video API routes.

- POST   /api/avatar/generate           Admit, submit and record a job
- GET    /api/avatar/status/{job_id}    Refresh a job from the provider
- GET    /api/avatar/jobs               Caller's jobs, newest first
- POST   /api/avatar/complete/{job_id}  Client-driven completion
- DELETE /api/avatar/{job_id}           Delete (POST /delete/{job_id} kept for older clients)
"""
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from backend.core.auth import get_current_user_id
from backend.core.config import settings
from backend.features.avatar.azure_provider import AzureAvatarProvider
from backend.features.avatar.provider import AvatarProvider, AvatarProviderConfig
from backend.features.jobs.service import (
    complete_job,
    create_video_job,
    delete_video_job,
    job_view,
    list_jobs,
    refresh_job,
)

router = APIRouter(prefix="/api/avatar", tags=["avatar"])


@lru_cache(maxsize=1)
def get_avatar_provider() -> AvatarProvider:
    """Process-wide provider built from settings; overridden in tests."""
    return AzureAvatarProvider(AvatarProviderConfig.from_settings(settings))


class Background(BaseModel):
    color: Optional[str] = None
    image: Optional[str] = None


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, max_length=200)
    script: str = Field(..., min_length=1)
    voice: str = Field(..., min_length=1)
    avatar: Optional[str] = None
    avatar_style: Optional[str] = Field(None, alias="avatarStyle")
    background: Optional[Background] = None
    locale: str = "en-US"


@router.post("/generate")
def generate(
    body: GenerateRequest,
    user_id: str = Depends(get_current_user_id),
    provider: AvatarProvider = Depends(get_avatar_provider),
):
    background = body.background or Background()
    job = create_video_job(
        user_id,
        provider,
        script=body.script,
        voice=body.voice,
        name=body.name,
        avatar=body.avatar,
        avatar_style=body.avatar_style,
        background_color=background.color,
        background_image=background.image,
        locale=body.locale,
    )
    return {
        "message": "Success",
        "data": {
            "id": job.job_id,
            "status": job.status.value,
            "createdDate": job.created_at.isoformat(),
        },
    }


@router.get("/status/{job_id}")
def status(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    provider: AvatarProvider = Depends(get_avatar_provider),
):
    job, normalized = refresh_job(user_id, job_id, provider)
    return {"message": "Success", "data": job_view(job, normalized)}


@router.get("/jobs")
def jobs(user_id: str = Depends(get_current_user_id)):
    items = [job_view(job, normalized) for job, normalized in list_jobs(user_id)]
    return {"message": "Success", "count": len(items), "data": items}


@router.post("/complete/{job_id}")
def complete(job_id: str, user_id: str = Depends(get_current_user_id)):
    job = complete_job(user_id, job_id)
    return {"message": "Video marked as completed", "data": job_view(job)}


def _delete(job_id: str, user_id: str, provider: AvatarProvider):
    delete_video_job(user_id, job_id, provider)
    return {"message": "Video deleted", "data": {"id": job_id}}


@router.delete("/{job_id}")
def delete(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    provider: AvatarProvider = Depends(get_avatar_provider),
):
    return _delete(job_id, user_id, provider)


@router.post("/delete/{job_id}")
def delete_legacy(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    provider: AvatarProvider = Depends(get_avatar_provider),
):
    return _delete(job_id, user_id, provider)
