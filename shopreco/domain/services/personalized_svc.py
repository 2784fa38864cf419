import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Set

from shopreco.domain.models.product import CatalogFilter
from shopreco.domain.models.reco import RecommendationContext, RecommendationScore, StrategyConfig, StrategyName
from shopreco.domain.services.constants import (
    CATEGORY_AFFINITY_CONFIDENCE,
    REASON_CATEGORY_AFFINITY,
    REASON_PERSONALIZED,
    REASON_SIMILAR_USERS,
)
from shopreco.domain.services.strategy import Strategy, StrategyResult, rank

logger = logging.getLogger(__name__)


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def top_categories(counts: Dict[str, int], n: int) -> List[str]:
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [cat for cat, _ in ranked[:n]]


class PersonalizedStrategy(Strategy):
    """
    Scores for one shopper from two signals, summed per product:

    - category affinity: unpurchased products in the shopper's top categories,
      scored by how often they buy in that category (plus a bonus when featured);
    - similar users: products bought by shoppers whose purchases overlap enough
      (Jaccard), scored by that overlap.

    A shopper without any purchase yet gets the trending list instead.
    """

    name = StrategyName.PERSONALIZED

    def __init__(self, *args, trending: Strategy, **kwargs):
        super().__init__(*args, **kwargs)
        self.trending = trending

    @property
    def ttl(self) -> int:
        return self.settings.personalized_cache_ttl

    def applies(self, ctx: RecommendationContext) -> bool:
        return bool(ctx.user_id)

    def context_id(self, ctx: RecommendationContext) -> str:
        return ctx.user_id

    async def _compute(self, ctx: RecommendationContext, config: StrategyConfig) -> StrategyResult:
        history_limit = config.param("history_limit", self.settings.user_history_limit)
        history = [
            r for r in await self.store.find_user_order_history(ctx.tenant_id, ctx.user_id, history_limit)
            if r.qualifying
        ]
        profile = self.profiles.get(ctx.user_id)
        viewed: Set[str] = set(profile.viewed) if profile else set()

        if history:
            purchased = {r.product_id for r in history}
            if profile:
                purchased |= profile.purchased
            categories = dict(Counter(r.category_id for r in history if r.category_id))
            total_orders = len({r.order_id for r in history})
        elif profile and profile.purchased:
            purchased = set(profile.purchased)
            categories = dict(profile.categories)
            total_orders = len(profile.purchased)
        else:
            logger.info("personalized no history, serving trending tenant=%s user_id=%s", ctx.tenant_id, ctx.user_id)
            # never cached under this user's key: it must keep matching trending
            trending_config = StrategyConfig(name=StrategyName.TRENDING)
            return StrategyResult(await self.trending.score(ctx, trending_config), cacheable=False)

        affinity = await self._category_affinity(ctx, config, purchased, categories, total_orders)
        similar = await self._similar_users(ctx, config, purchased, viewed)
        logger.debug(
            "personalized user_id=%s purchased=%s categories=%s affinity=%s similar_users=%s",
            ctx.user_id, len(purchased), len(categories), len(affinity), len(similar),
        )
        return StrategyResult(rank(self._combine(affinity, similar))[: ctx.limit])

    async def _category_affinity(
        self,
        ctx: RecommendationContext,
        config: StrategyConfig,
        purchased: Set[str],
        categories: Dict[str, int],
        total_orders: int,
    ) -> Dict[str, float]:
        top = top_categories(categories, config.param("top_categories", self.settings.top_categories))
        if not top or total_orders <= 0:
            return {}
        bonus = config.param("featured_bonus", self.settings.featured_bonus)

        candidates = await self.store.find_catalog_entries(
            ctx.tenant_id, CatalogFilter(category_ids=top, ids_not_in=sorted(purchased))
        )
        return {
            c.product_id: categories.get(c.category_id, 0) / total_orders + (bonus if c.featured else 0.0)
            for c in candidates
            if c.eligible and c.product_id not in purchased and c.category_id in top
        }

    async def _similar_users(
        self,
        ctx: RecommendationContext,
        config: StrategyConfig,
        purchased: Set[str],
        viewed: Set[str],
    ) -> Dict[str, float]:
        threshold = config.param("min_similarity", self.settings.cf_min_similarity)
        scores: Dict[str, float] = defaultdict(float)
        for other in self.profiles.others(ctx.user_id):
            if not other.purchased:
                continue
            sim = jaccard(purchased, other.purchased)
            if sim <= threshold:
                continue
            for pid in other.purchased - purchased - viewed:
                scores[pid] += sim
        if not scores:
            return {}
        eligible = await self._eligible(ctx.tenant_id, scores)
        return {pid: s for pid, s in scores.items() if pid in eligible}

    def _combine(self, affinity: Dict[str, float], similar: Dict[str, float]) -> Iterable[RecommendationScore]:
        for pid in affinity.keys() | similar.keys():
            in_affinity, in_similar = pid in affinity, pid in similar
            if in_affinity and in_similar:
                reason = REASON_PERSONALIZED
            elif in_affinity:
                reason = REASON_CATEGORY_AFFINITY
            else:
                reason = REASON_SIMILAR_USERS
            confidence = CATEGORY_AFFINITY_CONFIDENCE if in_affinity else 0.0
            if in_similar:
                confidence = max(confidence, min(1.0, similar[pid]))
            yield RecommendationScore(
                product_id=pid,
                score=affinity.get(pid, 0.0) + similar.get(pid, 0.0),
                reason=reason,
                strategy=self.name.value,
                confidence=confidence,
            )
