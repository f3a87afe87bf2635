"""Admin routes. Every route requires metadata.role == "admin"."""
from fastapi import APIRouter, Depends, Query

from backend.core.auth import require_admin
from backend.features.users.service import list_users

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/users")
def get_users(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    users, pagination = list_users(page=page, limit=limit)
    return {"users": [u.to_public_dict() for u in users], "pagination": pagination}
