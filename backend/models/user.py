from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """Local projection of an identity-provider user."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    last_sign_in: Optional[datetime] = None
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.metadata.get("role") == "admin"

    def to_public_dict(self) -> dict:
        return {
            "id": self.user_id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "profileImageUrl": self.profile_image_url,
            "createdAt": self.created_at.isoformat(),
            "lastSignIn": self.last_sign_in.isoformat() if self.last_sign_in else None,
            "metadata": self.metadata,
            "isActive": self.is_active,
        }
