from datetime import datetime, timezone
from typing import Dict, List, Set

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(BaseModel):
    """
    Behavioural snapshot of one shopper, built from view/purchase/rating events.
    Mutable on purpose: only UserProfileStore touches it, under the user's lock.
    """
    user_id: str
    viewed: Set[str] = Field(default_factory=set)
    purchased: Set[str] = Field(default_factory=set)
    ratings: Dict[str, int] = Field(default_factory=dict)
    categories: Dict[str, int] = Field(default_factory=dict)
    # distinct product ids, most recent last
    recent_views: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)
