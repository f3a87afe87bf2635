"""
User projection service.

Local copy of identity-provider (Clerk) users, keyed by the provider's user
id. Webhook events are applied as idempotent upserts guarded by the event
timestamp: an event older than the newest one already applied is ignored,
so duplicate and out-of-order delivery are harmless.
"""

from datetime import datetime
from math import ceil
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, insert, select, update

from backend.core.database import ensure_utc, storage_session, users as app_users, utc_now
from backend.core.errors import NotFoundError, ValidationError
from backend.models.user import User


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email or "",
        first_name=row.first_name,
        last_name=row.last_name,
        profile_image_url=row.profile_image_url,
        metadata=row.user_metadata or {},
        is_active=bool(row.is_active),
        last_sign_in=ensure_utc(row.last_sign_in),
        created_at=ensure_utc(row.created_at),
    )


def get_user(user_id: str) -> Optional[User]:
    with storage_session("load user") as session:
        row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        return _row_to_user(row) if row else None


def require_user(user_id: str) -> User:
    user = get_user(user_id)
    if user is None:
        raise NotFoundError("User not found", details="User profile has not been created yet")
    return user


def upsert_user(
    user_id: str,
    fields: Dict[str, Any],
    event_time: datetime,
    created_at: Optional[datetime] = None,
) -> bool:
    """
    Apply profile fields from an identity event.

    Returns False when the event is older than the last applied one.
    """
    event_time = ensure_utc(event_time)
    now = utc_now()
    with storage_session("save user") as session:
        row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        if row is None:
            session.execute(
                insert(app_users).values(
                    user_id=user_id,
                    email=fields.get("email") or "",
                    first_name=fields.get("first_name"),
                    last_name=fields.get("last_name"),
                    profile_image_url=fields.get("profile_image_url"),
                    user_metadata={},
                    is_active=fields.get("is_active", True),
                    source_updated_at=event_time,
                    created_at=ensure_utc(created_at) or now,
                    updated_at=now,
                )
            )
            return True

        applied = ensure_utc(row.source_updated_at)
        if applied is not None and event_time < applied:
            return False

        values = {k: v for k, v in fields.items() if k in app_users.c}
        values.update(source_updated_at=event_time, updated_at=now)
        session.execute(update(app_users).where(app_users.c.user_id == user_id).values(**values))
        return True


def deactivate_user(user_id: str, event_time: datetime) -> bool:
    """Mark a user inactive. Unknown users get an inactive tombstone row."""
    return upsert_user(user_id, {"is_active": False}, event_time)


def record_sign_in(user_id: str, signed_in_at: datetime) -> bool:
    """Advance last_sign_in. Returns False for unknown users or stale sessions."""
    signed_in_at = ensure_utc(signed_in_at)
    with storage_session("record sign-in") as session:
        row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
        if row is None:
            return False
        current = ensure_utc(row.last_sign_in)
        if current is not None and signed_in_at <= current:
            return False
        session.execute(
            update(app_users)
            .where(app_users.c.user_id == user_id)
            .values(last_sign_in=signed_in_at, updated_at=utc_now())
        )
        return True


def update_metadata(user_id: str, metadata: Dict[str, Any]) -> User:
    """Replace the user's metadata object."""
    if not isinstance(metadata, dict):
        raise ValidationError("Invalid request", details="metadata must be an object")
    with storage_session("update user") as session:
        result = session.execute(
            update(app_users)
            .where(app_users.c.user_id == user_id)
            .values(user_metadata=metadata, updated_at=utc_now())
        )
        if result.rowcount == 0:
            raise NotFoundError("User not found", details="User profile has not been created yet")
    return require_user(user_id)


def list_users(page: int = 1, limit: int = 10) -> Tuple[List[User], Dict[str, int]]:
    """Newest users first, plus {total, page, pages}."""
    page = max(1, page)
    limit = max(1, min(limit, 100))
    with storage_session("list users") as session:
        total = session.execute(select(func.count()).select_from(app_users)).scalar_one()
        rows = session.execute(
            select(app_users)
            .order_by(app_users.c.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).fetchall()
    return [_row_to_user(r) for r in rows], {"total": total, "page": page, "pages": ceil(total / limit)}
