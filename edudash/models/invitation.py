"""
edudash/models/invitation.py

School invitation codes and teacher invitations derived from them.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class InvitationType(str, Enum):
    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SchoolInvitationCode(BaseModel):
    """A stored invitation code row."""
    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    preschool_id: str
    invitation_type: InvitationType
    invited_email: Optional[str] = None
    invited_name: Optional[str] = None
    invited_by: str
    description: Optional[str] = None
    expires_at: datetime
    max_uses: Optional[int] = None
    current_uses: int = 0
    is_active: bool = True
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime


class TeacherInvitation(BaseModel):
    """Teacher invitation listing entry with its derived status."""
    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    invitation_code: str
    preschool_id: str
    status: InvitationStatus
    invited_by: str
    created_at: datetime
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class Redemption(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    role: InvitationType
    preschool_id: str
    user_id: str
    remaining_uses: Optional[int] = None


class CreateSchoolCodeRequest(BaseModel):
    invitation_type: InvitationType = InvitationType.PARENT
    description: Optional[str] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    expiry_days: Optional[int] = Field(default=None, ge=1, le=365)
    invited_email: Optional[EmailStr] = None


class InviteTeacherRequest(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=200)


class RedeemCodeRequest(BaseModel):
    code: str = Field(min_length=4, max_length=32)
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=200)
