"""
edudash/models/feature.py

Feature catalog entries and tier enums.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict


class Tier(str, Enum):
    """Subscription level determining feature eligibility."""
    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class FeatureDescriptor(BaseModel):
    """
    A product capability and the minimum tier that unlocks it.

    Metered features draw one unit from the actor's monthly AI quota
    per invocation.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    required_tier: Tier
    is_metered: bool = False


class FeatureView(BaseModel):
    """Catalog entry as seen by one actor (enabled for their tier or not)."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    tier: Tier
    enabled: bool
