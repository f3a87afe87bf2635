"""
Clerk webhook event handling.

Verified events are dispatched by type onto the user projection. Handlers
are idempotent, and each carries an event time so stale deliveries are
dropped by the projection's ordering guard.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import logging

from backend.core.database import utc_now
from backend.core.errors import ValidationError
from backend.core.logging import log_event
from backend.core.metrics import webhook_events_total
from backend.features.users import service as users

logger = logging.getLogger("vidify")


def _from_millis(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _primary_email(data: Dict[str, Any]) -> str:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    if not isinstance(addresses, list):
        raise ValidationError("Invalid webhook payload", details="email_addresses must be a list")
    entries = [entry for entry in addresses if isinstance(entry, dict)]
    for entry in entries:
        if primary_id and entry.get("id") == primary_id:
            return entry.get("email_address") or ""
    return (entries[0].get("email_address") or "") if entries else ""


def _profile_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "email": _primary_email(data),
        "first_name": data.get("first_name"),
        "last_name": data.get("last_name"),
        "profile_image_url": data.get("profile_image_url") or data.get("image_url"),
        "is_active": True,
    }


def _on_user_upsert(data: Dict[str, Any], sent_at: datetime) -> bool:
    event_time = _from_millis(data.get("updated_at")) or sent_at
    return users.upsert_user(
        data["id"],
        _profile_fields(data),
        event_time,
        created_at=_from_millis(data.get("created_at")),
    )


def _on_user_deleted(data: Dict[str, Any], sent_at: datetime) -> bool:
    return users.deactivate_user(data["id"], sent_at)


def _on_session_created(data: Dict[str, Any], sent_at: datetime) -> bool:
    signed_in_at = _from_millis(data.get("created_at")) or sent_at
    return users.record_sign_in(data["user_id"], signed_in_at)


HANDLERS: Dict[str, Callable[[Dict[str, Any], datetime], bool]] = {
    "user.created": _on_user_upsert,
    "user.updated": _on_user_upsert,
    "user.deleted": _on_user_deleted,
    "session.created": _on_session_created,
}


def handle_clerk_event(event: Dict[str, Any], sent_at: Optional[datetime] = None) -> str:
    """
    Apply one verified Clerk event.

    Returns the outcome: "applied", "stale" (older than what is stored, or
    unknown user for sessions) or "ignored" (unhandled type).

    Raises:
        ValidationError: Malformed event body
        StorageError: Persistence failed
    """
    if not isinstance(event, dict):
        raise ValidationError("Invalid webhook payload", details="Event must be a JSON object")
    event_type = event.get("type")
    data = event.get("data")
    if not event_type or not isinstance(data, dict):
        raise ValidationError("Invalid webhook payload", details="Event must have a type and a data object")

    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("clerk.unhandled_event", extra={"event_type": event_type})
        webhook_events_total.inc(labels={"source": "clerk", "type": event_type, "outcome": "ignored"})
        return "ignored"

    try:
        applied = handler(data, sent_at or utc_now())
    except KeyError as e:
        raise ValidationError("Invalid webhook payload", details=f"Missing field {e.args[0]}")

    outcome = "applied" if applied else "stale"
    webhook_events_total.inc(labels={"source": "clerk", "type": event_type, "outcome": outcome})
    log_event("info", "clerk.event", user_id=data.get("id") or data.get("user_id"),
              event_type=event_type, extra={"outcome": outcome})
    return outcome
