import asyncio
import logging
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from shopreco.core.config import Settings, get_settings
from shopreco.domain.models.profile import UserProfile
from shopreco.domain.models.reco import (
    EngineStats,
    RecommendationContext,
    RecommendationScore,
    StrategyConfig,
    StrategyName,
    default_strategy_configs,
)
from shopreco.domain.repositories.interaction_repo import InteractionStore
from shopreco.domain.repositories.profile_repo import UserProfileStore
from shopreco.domain.repositories.reco_cache_repo import RecoCacheRepo
from shopreco.domain.services.blender import StrategyOutput, blend
from shopreco.domain.services.co_occurrence_svc import CoOccurrenceStrategy
from shopreco.domain.services.content_similarity_svc import ContentSimilarityStrategy
from shopreco.domain.services.personalized_svc import PersonalizedStrategy
from shopreco.domain.services.strategy import Strategy
from shopreco.domain.services.trending_svc import TrendingStrategy

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationEngine:
    """
    Entry point for every recommendation and interaction-recording call.

    Holds the store, the cache and the profile store, plus a registry of
    strategies keyed by name. Build one per process and pass it around; nothing
    here is a module-level singleton.
    """

    def __init__(
        self,
        store: InteractionStore,
        redis=None,
        settings: Optional[Settings] = None,
        profiles: Optional[UserProfileStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.clock = clock or _utcnow
        self.cache = RecoCacheRepo(redis, prefix=self.settings.cache_prefix)
        self.profiles = profiles or UserProfileStore(self.settings.recent_views_size, clock=self.clock)

        self._strategies: Dict[StrategyName, Strategy] = {}
        self._combined_requests = 0
        self._deadline_overruns = 0

        deps = (self.store, self.cache, self.settings, self.profiles, self.clock)
        trending = TrendingStrategy(*deps)
        self.register(CoOccurrenceStrategy(*deps))
        self.register(ContentSimilarityStrategy(*deps))
        self.register(trending)
        self.register(PersonalizedStrategy(*deps, trending=trending))

    # ---- Registry ------------------------------------------------------------

    def register(self, strategy: Strategy) -> None:
        """Add or replace the strategy serving `strategy.name`."""
        self._strategies[strategy.name] = strategy
        logger.debug("strategy registered name=%s", strategy.name.value)

    def strategy(self, name: StrategyName) -> Strategy:
        return self._strategies[name]

    # ---- Single-strategy operations -----------------------------------------

    def _context(self, tenant_id: str, limit: Optional[int], **kwargs) -> Optional[RecommendationContext]:
        """None when the caller asked for no results at all (limit <= 0)."""
        if limit is None:
            limit = self.settings.default_limit
        if limit <= 0:
            logger.debug("non-positive limit=%s tenant=%s, nothing to compute", limit, tenant_id)
            return None
        return RecommendationContext(tenant_id=tenant_id, limit=limit, **kwargs)

    async def _run_one(self, name: StrategyName, ctx: Optional[RecommendationContext]) -> List[RecommendationScore]:
        if ctx is None:
            return []
        results = await self.strategy(name).score(ctx, StrategyConfig(name=name))
        return [s for s in results if s.product_id != ctx.product_id]

    async def get_frequently_bought_together(self, tenant_id: str, product_id: str, limit: int = 6) -> List[RecommendationScore]:
        ctx = self._context(tenant_id, limit, product_id=product_id)
        return await self._run_one(StrategyName.CO_OCCURRENCE, ctx)

    async def get_similar_products(self, tenant_id: str, product_id: str, limit: int = 6) -> List[RecommendationScore]:
        ctx = self._context(tenant_id, limit, product_id=product_id)
        return await self._run_one(StrategyName.CONTENT_SIMILARITY, ctx)

    async def get_similar_to_recent_views(self, tenant_id: str, user_id: str, limit: int = 6) -> List[RecommendationScore]:
        ctx = self._context(tenant_id, limit, user_id=user_id)
        return await self._run_one(StrategyName.CONTENT_SIMILARITY, ctx)

    async def get_trending_products(
        self, tenant_id: str, limit: int = 12, window_days: Optional[int] = None
    ) -> List[RecommendationScore]:
        ctx = self._context(tenant_id, limit)
        if ctx is None:
            return []
        params = {"window_days": window_days} if window_days is not None else {}
        config = StrategyConfig(name=StrategyName.TRENDING, params=params)
        return await self.strategy(StrategyName.TRENDING).score(ctx, config)

    async def get_personalized_recommendations(self, tenant_id: str, user_id: str, limit: int = 12) -> List[RecommendationScore]:
        ctx = self._context(tenant_id, limit, user_id=user_id)
        return await self._run_one(StrategyName.PERSONALIZED, ctx)

    # ---- Blended operation --------------------------------------------------

    async def get_combined_recommendations(
        self,
        tenant_id: str,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
        limit: Optional[int] = None,
        strategies: Optional[Sequence[StrategyConfig]] = None,
        normalize: bool = False,
    ) -> List[RecommendationScore]:
        ctx = self._context(
            tenant_id,
            limit,
            user_id=user_id,
            product_id=product_id,
            strategies=list(strategies) if strategies is not None else None,
            normalize=normalize,
        )
        if ctx is None:
            return []
        return await self.recommend(ctx)

    async def recommend(self, ctx: RecommendationContext) -> List[RecommendationScore]:
        """
        Fan out to every configured strategy that applies to the context, wait
        for them up to the deadline, and blend what came back. Strategies that
        fail or overrun contribute nothing; the result may be empty, never an error.
        """
        t0 = time.perf_counter()
        self._combined_requests += 1
        logger.info(
            "combined start tenant=%s user_id=%s product_id=%s limit=%s",
            ctx.tenant_id, ctx.user_id, ctx.product_id, ctx.limit,
        )

        configs: "OrderedDict[StrategyName, StrategyConfig]" = OrderedDict()
        for cfg in ctx.strategies if ctx.strategies is not None else default_strategy_configs():
            if cfg.name in configs:
                logger.warning("combined duplicate strategy ignored name=%s", cfg.name.value)
                continue
            configs[cfg.name] = cfg

        tasks: Dict[asyncio.Task, StrategyConfig] = {}
        for name, cfg in configs.items():
            strategy = self._strategies.get(name)
            if strategy is None:
                logger.warning("combined unknown strategy name=%s", name.value)
                continue
            if not strategy.applies(ctx):
                logger.debug("combined strategy not applicable name=%s", name.value)
                continue
            tasks[asyncio.create_task(strategy.score(ctx, cfg), name=f"reco:{name.value}")] = cfg

        outputs: List[StrategyOutput] = []
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=self.settings.reco_deadline_s)
            for task in pending:
                task.cancel()
                self._deadline_overruns += 1
                logger.warning(
                    "combined deadline exceeded strategy=%s tenant=%s deadline=%.2fs",
                    tasks[task].name.value, ctx.tenant_id, self.settings.reco_deadline_s,
                )
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            for task, cfg in tasks.items():
                if task not in done:
                    continue
                if (exc := task.exception()) is not None:
                    self._strategies[cfg.name].failures += 1
                    logger.error("combined strategy error name=%s err=%s", cfg.name.value, exc)
                    continue
                scores = [s for s in task.result() if s.product_id != ctx.product_id]
                outputs.append((cfg, scores))

        result = blend(outputs, ctx.limit, normalize=ctx.normalize)
        logger.info(
            "combined done tenant=%s strategies=%s items=%s total_time=%.3fs",
            ctx.tenant_id, [cfg.name.value for cfg, _ in outputs], len(result), time.perf_counter() - t0,
        )
        return result

    # ---- Interaction recording ----------------------------------------------

    async def record_view(self, user_id: str, product_id: str) -> None:
        await self.profiles.record_view(user_id, product_id)

    async def record_purchase(self, user_id: str, product_id: str, category: Optional[str] = None) -> None:
        await self.profiles.record_purchase(user_id, product_id, category)

    async def record_rating(self, user_id: str, product_id: str, rating: int) -> None:
        await self.profiles.record_rating(user_id, product_id, rating)

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profiles.get(user_id)

    def get_stats(self) -> EngineStats:
        return EngineStats(
            total_users=len(self.profiles),
            combined_requests=self._combined_requests,
            strategy_failures={name.value: s.failures for name, s in self._strategies.items()},
            deadline_overruns=self._deadline_overruns,
        )
