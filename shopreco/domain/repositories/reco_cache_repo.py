from typing import Optional, Iterable
from shopreco.domain.models.reco import RecommendationScore
import hashlib
import json
import logging

logger = logging.getLogger(__name__)

def _h(params, limit):
    """
    Short hash of the strategy params and limit.
    Keeps differently-tuned requests for the same context apart.
    """
    s = json.dumps({"p": params or {}, "k": limit}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(s.encode()).hexdigest()[:10]

class RecoCacheRepo:
    """
    Adapter for caching strategy outputs in Redis (or anything with get/set(ex=)).
    Stores and retrieves lists of RecommendationScore objects.
    Best effort: a missing client or a failing call reads as a miss / a skipped write.
    """
    def __init__(self, redis, prefix: str = "reco"):
        self.cache = redis
        self.prefix = prefix

    def key(self, strategy: str, tenant_id: str, context_id: str, limit: int, params=None) -> str:
        """
        Build the cache key for one strategy run: strategy, tenant and context
        (product id, user id, or '-' for tenant-wide), plus a params/limit hash.
        """
        return f"{self.prefix}:{strategy}:{tenant_id}:{context_id}:{_h(params, limit)}"

    async def get(self, key: str) -> Optional[list[RecommendationScore]]:
        """
        Retrieve a list of RecommendationScore from cache by key.
        Returns None if not found, undecodable, or the cache is unavailable.
        """
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get(key)
        except Exception as e:
            logger.warning("cache get error key=%s err=%s", key, e)
            return None
        if raw is None:
            return None
        try:
            return [RecommendationScore.model_validate(x) for x in json.loads(raw)]
        except Exception as e:
            logger.warning("cache decode error key=%s err=%s", key, e)
            return None

    async def set(self, key: str, items: Iterable[RecommendationScore], ttl: int) -> bool:
        """
        Store a list of RecommendationScore under the given key with a TTL.
        Returns False when the write was skipped or failed.
        """
        if self.cache is None:
            return False
        payload = json.dumps([i.model_dump() for i in items])
        try:
            await self.cache.set(key, payload, ex=ttl)
        except Exception as e:
            logger.warning("cache set error key=%s err=%s", key, e)
            return False
        logger.debug("cache set key=%s ttl=%ds bytes=%s", key, ttl, len(payload))
        return True
