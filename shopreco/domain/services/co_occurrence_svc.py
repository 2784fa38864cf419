import logging

from shopreco.domain.models.reco import RecommendationContext, RecommendationScore, StrategyConfig, StrategyName
from shopreco.domain.services.constants import OVERFETCH, REASON_CO_OCCURRENCE
from shopreco.domain.services.strategy import Strategy, StrategyResult

logger = logging.getLogger(__name__)


class CoOccurrenceStrategy(Strategy):
    """
    "Frequently bought together": among the recent qualifying orders that contain
    the focal product, the share of orders that also contain each other product.
    """

    name = StrategyName.CO_OCCURRENCE

    @property
    def ttl(self) -> int:
        return self.settings.co_occurrence_cache_ttl

    def applies(self, ctx: RecommendationContext) -> bool:
        return bool(ctx.product_id)

    def context_id(self, ctx: RecommendationContext) -> str:
        return ctx.product_id

    async def _compute(self, ctx: RecommendationContext, config: StrategyConfig) -> StrategyResult:
        recency_limit = config.param("recency_limit", self.settings.co_occurrence_recency_limit)

        order_ids = await self.store.find_orders_containing(ctx.tenant_id, ctx.product_id, recency_limit)
        if not order_ids:
            logger.info("co_occurrence no orders tenant=%s product_id=%s", ctx.tenant_id, ctx.product_id)
            return StrategyResult([])

        pairs = await self.store.count_product_co_occurrences(ctx.tenant_id, order_ids, ctx.product_id)
        counts = {pid: n for pid, n in pairs if pid != ctx.product_id and n > 0}
        logger.debug(
            "co_occurrence orders=%s co_products=%s product_id=%s",
            len(order_ids), len(counts), ctx.product_id,
        )

        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[: ctx.limit * OVERFETCH]
        eligible = await self._eligible(ctx.tenant_id, (pid for pid, _ in ranked))

        total = len(order_ids)
        items = [
            RecommendationScore(
                product_id=pid,
                score=n / total,
                reason=REASON_CO_OCCURRENCE,
                strategy=self.name.value,
                confidence=min(1.0, n / total),
            )
            for pid, n in ranked
            if pid in eligible
        ]
        return StrategyResult(items[: ctx.limit])
