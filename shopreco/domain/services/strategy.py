import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Iterable, List, NamedTuple

from shopreco.core.config import Settings
from shopreco.domain.models.product import CatalogFilter, ProductCatalogEntry
from shopreco.domain.models.reco import RecommendationContext, RecommendationScore, StrategyConfig, StrategyName
from shopreco.domain.repositories.interaction_repo import InteractionStore
from shopreco.domain.repositories.profile_repo import UserProfileStore
from shopreco.domain.repositories.reco_cache_repo import RecoCacheRepo

logger = logging.getLogger(__name__)


class StrategyResult(NamedTuple):
    items: List[RecommendationScore]
    cacheable: bool = True


def rank(items: Iterable[RecommendationScore]) -> List[RecommendationScore]:
    """Score descending, product id ascending on ties."""
    return sorted(items, key=lambda s: (-s.score, s.product_id))


class Strategy(ABC):
    """
    One way of scoring products for a context.

    Subclasses implement `ttl`, `applies()`, `context_id()` and `_compute()`;
    `score()` wraps them with the cache lookup/write-back and turns any failure
    into an empty result, so a strategy never fails the request it is part of.
    """

    name: StrategyName

    def __init__(
        self,
        store: InteractionStore,
        cache: RecoCacheRepo,
        settings: Settings,
        profiles: UserProfileStore,
        clock: Callable[[], datetime],
    ):
        self.store = store
        self.cache = cache
        self.settings = settings
        self.profiles = profiles
        self.clock = clock
        self.failures = 0

    @property
    @abstractmethod
    def ttl(self) -> int:
        """Cache lifetime of one result, in seconds."""

    @abstractmethod
    def applies(self, ctx: RecommendationContext) -> bool:
        """Whether the context carries what this strategy needs (a product, a user...)."""

    @abstractmethod
    def context_id(self, ctx: RecommendationContext) -> str:
        """Part of the cache key identifying what the result was computed for."""

    @abstractmethod
    async def _compute(self, ctx: RecommendationContext, config: StrategyConfig) -> StrategyResult:
        ...

    async def score(self, ctx: RecommendationContext, config: StrategyConfig) -> List[RecommendationScore]:
        if not self.applies(ctx):
            logger.debug("%s skipped tenant=%s (missing context)", self.name.value, ctx.tenant_id)
            return []

        t0 = time.perf_counter()
        key = self.cache.key(self.name.value, ctx.tenant_id, self.context_id(ctx), ctx.limit, config.params)
        if (cached := await self.cache.get(key)) is not None:
            logger.info("%s cache_hit key=%s items=%s", self.name.value, key, len(cached))
            return cached
        logger.info("%s cache_miss key=%s", self.name.value, key)

        try:
            result = await self._compute(ctx, config)
        except Exception:
            self.failures += 1
            logger.exception(
                "%s failed tenant=%s user_id=%s product_id=%s",
                self.name.value, ctx.tenant_id, ctx.user_id, ctx.product_id,
            )
            return []

        if result.cacheable:
            await self.cache.set(key, result.items, ttl=self.ttl)

        logger.info(
            "%s done tenant=%s items=%s total_time=%.3fs",
            self.name.value, ctx.tenant_id, len(result.items), time.perf_counter() - t0,
        )
        return result.items

    async def _eligible(self, tenant_id: str, product_ids: Iterable[str]) -> Dict[str, ProductCatalogEntry]:
        """Catalog entries for the ids that are recommendable right now (in stock, published)."""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        entries = await self.store.find_catalog_entries(tenant_id, CatalogFilter(ids_in=ids))
        return {e.product_id: e for e in entries if e.eligible}
