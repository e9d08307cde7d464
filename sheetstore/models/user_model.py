"""
User and permission models.
Ownership is never stored as a permission; it is implied by Spreadsheet.owner_id.
"""

from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PermissionType(str, Enum):
    """Access level granted to a non-owner on one spreadsheet."""
    VIEW = "VIEW"
    EDIT = "EDIT"
    ADMIN = "ADMIN"


class User(BaseModel):
    """A registered identity. The username is the external handle and never changes."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(default_factory=lambda: f"user_{uuid.uuid4().hex[:12]}")
    username: str = Field(..., min_length=1, max_length=150)
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('username')
    @classmethod
    def validate_username(cls, value):
        if value != value.strip():
            raise ValueError("Username must not have surrounding whitespace")
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "created_at": self.created_at.isoformat(),
        }


class Permission(BaseModel):
    """Grant of one PermissionType to one user on one spreadsheet."""

    spreadsheet_id: str
    user_id: str
    permission_type: PermissionType
    granted_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self):
        return (self.spreadsheet_id, self.user_id)

    def allows(self, required: PermissionType) -> bool:
        """Check whether this grant satisfies the required level."""
        if required == PermissionType.VIEW:
            return True
        if required == PermissionType.EDIT:
            return self.permission_type in (PermissionType.EDIT, PermissionType.ADMIN)
        return self.permission_type == PermissionType.ADMIN
