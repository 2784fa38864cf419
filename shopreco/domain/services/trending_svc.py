import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Set

from shopreco.domain.models.reco import RecommendationContext, RecommendationScore, StrategyConfig, StrategyName
from shopreco.domain.services.constants import OVERFETCH, REASON_TRENDING, TENANT_WIDE
from shopreco.domain.services.strategy import Strategy, StrategyResult

logger = logging.getLogger(__name__)


class TrendingStrategy(Strategy):
    """
    Share of recent demand: distinct qualifying orders per product inside the
    window, divided by the order count summed over every product in the window.
    Needs no user or product, so it is the fallback of last resort.
    """

    name = StrategyName.TRENDING

    @property
    def ttl(self) -> int:
        return self.settings.trending_cache_ttl

    def applies(self, ctx: RecommendationContext) -> bool:
        return True

    def context_id(self, ctx: RecommendationContext) -> str:
        return TENANT_WIDE

    async def _compute(self, ctx: RecommendationContext, config: StrategyConfig) -> StrategyResult:
        window_days = config.param("window_days", self.settings.trending_window_days)
        since = self.clock() - timedelta(days=window_days)

        records = await self.store.find_interactions_in_window(ctx.tenant_id, since)
        orders: Dict[str, Set[str]] = defaultdict(set)
        for r in records:
            if r.qualifying and r.ordered_at >= since:
                orders[r.product_id].add(r.order_id)

        if not orders:
            logger.info("trending empty window tenant=%s window_days=%s", ctx.tenant_id, window_days)
            return StrategyResult([])

        counts = {pid: len(ids) for pid, ids in orders.items()}
        # denominator over the full candidate set, before eligibility and truncation
        total = sum(counts.values())

        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[: ctx.limit * OVERFETCH]
        eligible = await self._eligible(ctx.tenant_id, (pid for pid, _ in ranked))
        logger.debug(
            "trending records=%s products=%s total_orders=%s eligible=%s",
            len(records), len(counts), total, len(eligible),
        )

        items = [
            RecommendationScore(
                product_id=pid,
                score=n / total,
                reason=REASON_TRENDING,
                strategy=self.name.value,
                confidence=min(1.0, n / total),
            )
            for pid, n in ranked
            if pid in eligible
        ]
        return StrategyResult(items[: ctx.limit])
