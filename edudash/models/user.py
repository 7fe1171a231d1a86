"""
edudash/models/user.py

User profile as stored in the users table.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    preschool_id: Optional[str] = None
    subscription_tier: Optional[str] = None
    subscription_status: Optional[str] = None
    created_at: Optional[datetime] = None
