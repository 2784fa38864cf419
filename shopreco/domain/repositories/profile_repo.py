# shopreco/domain/repositories/profile_repo.py
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from shopreco.domain.models.profile import UserProfile
from shopreco.utils.locks import KeyedLock

logger = logging.getLogger(__name__)


class UserProfileStore:
    """
    In-process store of user profiles fed by interaction events.
    Every mutation of a profile happens under that user's lock; readers get deep copies.
    Profiles are never evicted here, retention is up to the owner of the store.
    """

    def __init__(self, recent_views_size: int = 5, clock: Optional[Callable[[], datetime]] = None):
        self._profiles: Dict[str, UserProfile] = {}
        self._locks = KeyedLock()
        self.recent_views_size = recent_views_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _get_or_create(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id, updated_at=self._clock())
            self._profiles[user_id] = profile
            logger.debug("profile created user_id=%s", user_id)
        return profile

    async def record_view(self, user_id: str, product_id: str) -> None:
        async with self._locks.hold(user_id):
            profile = self._get_or_create(user_id)
            profile.viewed.add(product_id)
            if product_id in profile.recent_views:
                profile.recent_views.remove(product_id)
            profile.recent_views.append(product_id)
            del profile.recent_views[:-self.recent_views_size]
            profile.updated_at = self._clock()
        logger.debug("view recorded user_id=%s product_id=%s", user_id, product_id)

    async def record_purchase(self, user_id: str, product_id: str, category: Optional[str]) -> None:
        async with self._locks.hold(user_id):
            profile = self._get_or_create(user_id)
            profile.purchased.add(product_id)
            if category:
                profile.categories[category] = profile.categories.get(category, 0) + 1
            profile.updated_at = self._clock()
        logger.debug("purchase recorded user_id=%s product_id=%s category=%s", user_id, product_id, category)

    async def record_rating(self, user_id: str, product_id: str, rating: int) -> None:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValueError(f"rating must be an integer between 1 and 5, got {rating!r}")
        async with self._locks.hold(user_id):
            profile = self._get_or_create(user_id)
            profile.ratings[product_id] = rating
            profile.updated_at = self._clock()
        logger.debug("rating recorded user_id=%s product_id=%s rating=%s", user_id, product_id, rating)

    def get(self, user_id: str) -> Optional[UserProfile]:
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    def others(self, user_id: str) -> List[UserProfile]:
        """Snapshots of every known profile except `user_id`, for user-to-user similarity."""
        return [p.model_copy(deep=True) for uid, p in list(self._profiles.items()) if uid != user_id]

    def __len__(self) -> int:
        return len(self._profiles)
