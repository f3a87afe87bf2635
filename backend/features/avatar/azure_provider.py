"""
Azure batch avatar synthesis provider.

Implements AvatarProvider against the Azure Speech "avatar/batchsyntheses"
REST API. Jobs are created with PUT under a caller-chosen id, so retrying
a submit with the same id is idempotent on the provider side.

Upstream error bodies are never passed through: only a short message is
kept, the raw body is logged at debug level.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from xml.sax.saxutils import escape, quoteattr

import httpx

from backend.core.database import ensure_utc, utc_now
from backend.core.errors import ProviderError, ProviderRejected, ProviderUnavailable
from backend.core.metrics import provider_errors_total
from backend.features.avatar.provider import (
    AvatarProviderConfig,
    ProviderJobHandle,
    ProviderStatus,
    SynthesisRequest,
)

logger = logging.getLogger("vidify")

# Output bitrate by plan quality tier
BITRATE_KBPS = {
    "standard": 2000,
    "high": 4000,
    "ultra": 8000,
}


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _upstream_message(response: httpx.Response) -> str:
    """Short, client-safe message extracted from an upstream error body."""
    try:
        body = response.json()
    except ValueError:
        return f"Provider returned HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])[:300]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])[:300]
    return f"Provider returned HTTP {response.status_code}"


def build_ssml(script: str, voice: str, locale: str = "en-US") -> str:
    return (
        f"<speak version='1.0' xml:lang={quoteattr(locale)}>"
        f"<voice name={quoteattr(voice)}>{escape(script)}</voice>"
        "</speak>"
    )


class AzureAvatarProvider:
    """AvatarProvider backed by Azure batch avatar synthesis."""

    def __init__(self, config: AvatarProviderConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self._client = client or httpx.Client(timeout=config.timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def _url(self, job_id: str) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/avatar/batchsyntheses/{job_id}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Ocp-Apim-Subscription-Key": self.config.subscription_key or "",
            "Content-Type": "application/json",
        }

    def build_payload(self, request: SynthesisRequest) -> Dict[str, Any]:
        avatar_config: Dict[str, Any] = {
            "talkingAvatarCharacter": request.avatar or self.config.default_character,
            "talkingAvatarStyle": request.avatar_style or self.config.default_style,
            "videoFormat": "mp4",
            "videoCodec": "h264",
            "bitrateKbps": BITRATE_KBPS.get(request.quality, BITRATE_KBPS["standard"]),
            "subtitleType": "soft_embedded",
        }
        if request.background_color:
            avatar_config["backgroundColor"] = request.background_color
        if request.background_image:
            avatar_config["backgroundImage"] = request.background_image
        if request.watermark:
            avatar_config["watermark"] = {"text": self.config.watermark_text}

        return {
            "inputKind": "SSML",
            "inputs": [{"content": build_ssml(request.script, request.voice, request.locale)}],
            "avatarConfig": avatar_config,
        }

    def _call(self, operation: str, method: str, job_id: str, json: Optional[dict] = None) -> httpx.Response:
        try:
            response = self._client.request(
                method,
                self._url(job_id),
                params={"api-version": self.config.api_version},
                headers=self._headers(),
                json=json,
            )
        except httpx.TimeoutException as e:
            provider_errors_total.inc(labels={"operation": operation, "kind": "timeout"})
            raise ProviderUnavailable(
                "Video provider unavailable",
                details="The video provider did not respond in time. Please retry.",
            ) from e
        except httpx.HTTPError as e:
            provider_errors_total.inc(labels={"operation": operation, "kind": "network"})
            raise ProviderUnavailable(
                "Video provider unavailable",
                details="Could not reach the video provider. Please retry.",
            ) from e

        if response.status_code >= 500:
            provider_errors_total.inc(labels={"operation": operation, "kind": "unavailable"})
            logger.debug("provider.error_body", extra={"job_id": job_id, "status": response.status_code})
            raise ProviderUnavailable(
                "Video provider unavailable",
                details=_upstream_message(response),
                upstream_status=response.status_code,
            )
        if response.status_code >= 400:
            provider_errors_total.inc(labels={"operation": operation, "kind": "rejected"})
            raise ProviderRejected(
                "Video provider rejected the request",
                details=_upstream_message(response),
                upstream_status=response.status_code,
            )
        return response

    def _json_body(self, operation: str, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            provider_errors_total.inc(labels={"operation": operation, "kind": "malformed"})
            raise ProviderUnavailable(
                "Video provider unavailable",
                details="The video provider returned an unreadable response. Please retry.",
                upstream_status=response.status_code,
            )
        return body

    def submit(self, request: SynthesisRequest) -> ProviderJobHandle:
        response = self._call("submit", "PUT", request.job_id, json=self.build_payload(request))
        try:
            body = self._json_body("submit", response)
        except ProviderUnavailable:
            # The job may exist upstream even though the reply was unreadable
            self.cancel(request.job_id)
            raise
        return ProviderJobHandle(
            job_id=body.get("id") or request.job_id,
            raw_status=body.get("status") or "NotStarted",
            created_at=_parse_timestamp(body.get("createdDateTime")) or utc_now(),
        )

    def fetch_status(self, job_id: str) -> ProviderStatus:
        response = self._call("fetch_status", "GET", job_id)
        body = self._json_body("fetch_status", response)
        outputs = _as_dict(body.get("outputs"))
        error = _as_dict(_as_dict(body.get("properties")).get("error"))
        return ProviderStatus(
            job_id=body.get("id") or job_id,
            raw_status=body.get("status") or "",
            created_at=_parse_timestamp(body.get("createdDateTime")),
            last_action_at=_parse_timestamp(body.get("lastActionDateTime")),
            result_url=outputs.get("result"),
            error_message=error.get("message"),
            raw=body,
        )

    def cancel(self, job_id: str) -> bool:
        try:
            self._call("cancel", "DELETE", job_id)
        except ProviderError as e:
            logger.warning(
                "provider.cancel_failed",
                extra={"job_id": job_id, "error_code": e.code, "status": e.status_code},
            )
            return False
        return True
