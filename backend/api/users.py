"""
User profile routes.

- GET  /api/users/me      Caller's projection
- POST /api/users/update  Replace the caller's metadata object
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.core.auth import get_current_user_id
from backend.features.users.service import require_user, update_metadata

router = APIRouter(prefix="/api/users", tags=["users"])


class UpdateUserRequest(BaseModel):
    metadata: Dict[str, Any]


@router.get("/me")
def me(user_id: str = Depends(get_current_user_id)):
    return {"user": require_user(user_id).to_public_dict()}


@router.post("/update")
def update(body: UpdateUserRequest, user_id: str = Depends(get_current_user_id)):
    user = update_metadata(user_id, body.metadata)
    return {"message": "User profile updated successfully", "user": user.to_public_dict()}
