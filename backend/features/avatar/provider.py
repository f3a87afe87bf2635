"""
Avatar synthesis provider protocol.

The lifecycle controller only talks to providers through this interface so
the synthesis backend can be swapped (or faked in tests) without touching
admission or job bookkeeping.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class AvatarProviderConfig:
    """Connection settings injected into a provider at construction."""
    base_url: str
    subscription_key: Optional[str]
    api_version: str = "2024-08-01"
    timeout_seconds: float = 15.0
    default_character: str = "lisa"
    default_style: str = "casual-sitting"
    watermark_text: str = "Vidify"

    @classmethod
    def from_settings(cls, settings) -> "AvatarProviderConfig":
        return cls(
            base_url=settings.AVATAR_API_BASE_URL,
            subscription_key=settings.AVATAR_SUBSCRIPTION_KEY,
            api_version=settings.AVATAR_API_VERSION,
            timeout_seconds=settings.AVATAR_TIMEOUT_SECONDS,
            default_character=settings.AVATAR_DEFAULT_CHARACTER,
            default_style=settings.AVATAR_DEFAULT_STYLE,
            watermark_text=settings.AVATAR_WATERMARK_TEXT,
        )


@dataclass(frozen=True)
class SynthesisRequest:
    """
    Everything a provider needs to start one job.

    `quality` and `watermark` are derived from the caller's plan, never
    from client input.
    """
    job_id: str
    script: str
    voice: str
    avatar: Optional[str] = None
    avatar_style: Optional[str] = None
    background_color: Optional[str] = None
    background_image: Optional[str] = None
    locale: str = "en-US"
    quality: str = "standard"
    watermark: bool = False


@dataclass(frozen=True)
class ProviderJobHandle:
    job_id: str
    raw_status: str
    created_at: datetime


@dataclass(frozen=True)
class ProviderStatus:
    """A provider's view of one job. `raw_status` is provider vocabulary."""
    job_id: str
    raw_status: str
    created_at: Optional[datetime] = None
    last_action_at: Optional[datetime] = None
    result_url: Optional[str] = None
    error_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class AvatarProvider(Protocol):
    def submit(self, request: SynthesisRequest) -> ProviderJobHandle:
        """
        Create a synthesis job under the caller-chosen `request.job_id`.

        Raises:
            ProviderUnavailable: Network failure, timeout, or upstream 5xx
            ProviderRejected: Upstream refused the request (4xx)
        """
        ...

    def fetch_status(self, job_id: str) -> ProviderStatus:
        """
        Read the provider's current state for a job.

        Raises:
            ProviderUnavailable: Network failure, timeout, or upstream 5xx
            ProviderRejected: Upstream refused the request (4xx)
        """
        ...

    def cancel(self, job_id: str) -> bool:
        """Best-effort provider-side deletion. Returns True when acknowledged."""
        ...
