"""
Webhook signature verification.

Verification is pluggable: the Clerk endpoint asks get_verifier() for the
configured scheme and never looks at signature details itself.

Schemes:
- svix: base64 HMAC-SHA256 over "{svix-id}.{svix-timestamp}.{raw body}",
  keyed with the base64 part of a "whsec_..." secret; header holds
  space-separated "v1,<sig>" entries.
- hex: hex HMAC-SHA256 over the same content keyed with the raw secret.
"""
import base64
import binascii
import hashlib
import hmac
import time
from typing import Mapping, Optional, Protocol

from backend.core.errors import ValidationError, WebhookVerificationError

REQUIRED_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")
DEFAULT_TOLERANCE_SECONDS = 300


def _lower(headers: Mapping[str, str]) -> dict:
    return {k.lower(): v for k, v in headers.items()}


def require_signature_headers(headers: Mapping[str, str]) -> dict:
    """
    Raises:
        ValidationError: A signature header is missing
    """
    lowered = _lower(headers)
    if not all(lowered.get(name) for name in REQUIRED_HEADERS):
        raise ValidationError(
            "Missing webhook signature headers",
            details="svix-id, svix-timestamp and svix-signature are required",
        )
    return lowered


def _signed_content(msg_id: str, timestamp: str, payload: bytes) -> bytes:
    return f"{msg_id}.{timestamp}.".encode() + payload


def _candidate_signatures(header: str):
    for part in header.split():
        version, _, signature = part.partition(",")
        if signature:
            yield version, signature


class WebhookVerifier(Protocol):
    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> None:
        """Return normally when valid; raise WebhookVerificationError otherwise."""
        ...


class SvixSignatureVerifier:
    def __init__(self, tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS, clock=time.time):
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock

    @staticmethod
    def _key(secret: str) -> bytes:
        raw = secret[len("whsec_"):] if secret.startswith("whsec_") else secret
        try:
            return base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError):
            return raw.encode()

    def sign(self, payload: bytes, msg_id: str, timestamp: str, secret: str) -> str:
        digest = hmac.new(self._key(secret), _signed_content(msg_id, timestamp, payload), hashlib.sha256).digest()
        return "v1," + base64.b64encode(digest).decode()

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> None:
        h = require_signature_headers(headers)
        try:
            sent_at = int(h["svix-timestamp"])
        except ValueError:
            raise WebhookVerificationError("Invalid webhook signature", details="Malformed svix-timestamp")
        if abs(self._clock() - sent_at) > self.tolerance_seconds:
            raise WebhookVerificationError("Invalid webhook signature", details="Webhook timestamp outside tolerance")

        expected = self.sign(payload, h["svix-id"], h["svix-timestamp"], secret).split(",", 1)[1]
        for version, signature in _candidate_signatures(h["svix-signature"]):
            if version == "v1" and hmac.compare_digest(signature, expected):
                return
        raise WebhookVerificationError("Invalid webhook signature", details="No matching signature")


class HexHmacVerifier:
    def sign(self, payload: bytes, msg_id: str, timestamp: str, secret: str) -> str:
        digest = hmac.new(secret.encode(), _signed_content(msg_id, timestamp, payload), hashlib.sha256).hexdigest()
        return "v1," + digest

    def verify(self, payload: bytes, headers: Mapping[str, str], secret: str) -> None:
        h = require_signature_headers(headers)
        expected = self.sign(payload, h["svix-id"], h["svix-timestamp"], secret).split(",", 1)[1]
        for _, signature in _candidate_signatures(h["svix-signature"]):
            if hmac.compare_digest(signature, expected):
                return
        raise WebhookVerificationError("Invalid webhook signature", details="No matching signature")


def get_verifier(scheme: Optional[str] = None) -> WebhookVerifier:
    from backend.core.config import settings

    chosen = (scheme or settings.WEBHOOK_SIGNATURE_SCHEME or "svix").lower()
    if chosen == "hex":
        return HexHmacVerifier()
    return SvixSignatureVerifier()
