"""
edudash/models/usage_event.py

UsageEvent model for AI usage accounting.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UsageEvent(BaseModel):
    """
    One metered invocation by an actor.

    Every event counts toward the actor's single monthly pool regardless
    of feature_id.
    """
    model_config = ConfigDict(frozen=True)

    actor_id: str
    feature_id: str
    occurred_at: datetime
    tokens_used: Optional[int] = None
    cost_usd: Optional[float] = None
