import hashlib
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from shopreco.domain.models.product import CatalogFilter, ProductCatalogEntry
from shopreco.domain.models.reco import RecommendationContext, RecommendationScore, StrategyConfig, StrategyName
from shopreco.domain.services.constants import REASON_SIMILAR, REASON_SIMILAR_TO_VIEWS
from shopreco.domain.services.strategy import Strategy, StrategyResult, rank

logger = logging.getLogger(__name__)


def price_score(focal_price: float, price: float) -> float:
    """1 for the same price, falling linearly to 0 at a 100% difference."""
    if focal_price <= 0:
        return 1.0 if price == focal_price else 0.0
    return max(0.0, 1.0 - abs(price - focal_price) / focal_price)


def name_score(focal_tokens: Set[str], tokens: Iterable[str]) -> float:
    """Share of the focal name's distinct tokens that the candidate's name also has."""
    if not focal_tokens:
        return 0.0
    return len(focal_tokens & set(tokens)) / len(focal_tokens)


def similarity(
    focal: ProductCatalogEntry,
    candidate: ProductCatalogEntry,
    price_weight: float,
    name_weight: float,
) -> float:
    return (
        price_weight * price_score(focal.base_price, candidate.base_price)
        + name_weight * name_score(set(focal.tokens), candidate.tokens)
    )


class ContentSimilarityStrategy(Strategy):
    """
    "Similar products": same category, price within a band around the focal
    product, ranked by a blend of price proximity and shared name tokens.

    Without a focal product it falls back to the user's recent views, averaging
    the similarity of each candidate over those views.
    """

    name = StrategyName.CONTENT_SIMILARITY

    @property
    def ttl(self) -> int:
        return self.settings.content_similarity_cache_ttl

    def applies(self, ctx: RecommendationContext) -> bool:
        if ctx.product_id:
            return True
        if ctx.user_id:
            profile = self.profiles.get(ctx.user_id)
            return bool(profile and profile.recent_views)
        return False

    def context_id(self, ctx: RecommendationContext) -> str:
        if ctx.product_id:
            return ctx.product_id
        # new views change the key, so a cached list never outlives the views it was built from
        profile = self.profiles.get(ctx.user_id)
        views = ",".join(profile.recent_views) if profile else ""
        return f"user:{ctx.user_id}:{hashlib.sha1(views.encode()).hexdigest()[:8]}"

    async def _compute(self, ctx: RecommendationContext, config: StrategyConfig) -> StrategyResult:
        if ctx.product_id:
            return StrategyResult(await self._similar_to_product(ctx, config))
        return StrategyResult(await self._similar_to_views(ctx, config))

    async def _focal_entries(self, tenant_id: str, product_ids: List[str]) -> Dict[str, ProductCatalogEntry]:
        # the focal product itself may be out of stock or unpublished
        entries = await self.store.find_catalog_entries(
            tenant_id, CatalogFilter(ids_in=product_ids, in_stock=False, published=False)
        )
        return {e.product_id: e for e in entries}

    async def _scored_candidates(
        self,
        tenant_id: str,
        focal: ProductCatalogEntry,
        config: StrategyConfig,
        exclude: Set[str],
    ) -> Dict[str, float]:
        if focal.category_id is None:
            return {}
        tolerance = config.param("price_tolerance", self.settings.similarity_price_tolerance)
        price_weight = config.param("price_weight", self.settings.similarity_price_weight)
        name_weight = config.param("name_weight", self.settings.similarity_name_weight)

        candidates = await self.store.find_catalog_entries(
            tenant_id,
            CatalogFilter(
                category_ids=[focal.category_id],
                min_price=focal.base_price * (1 - tolerance),
                max_price=focal.base_price * (1 + tolerance),
                ids_not_in=sorted(exclude | {focal.product_id}),
            ),
        )
        return {
            c.product_id: similarity(focal, c, price_weight, name_weight)
            for c in candidates
            # the store filter is authoritative, this guards a lax adapter
            if c.eligible and c.category_id == focal.category_id and c.product_id not in exclude
            and c.product_id != focal.product_id
        }

    async def _similar_to_product(self, ctx: RecommendationContext, config: StrategyConfig) -> List[RecommendationScore]:
        focal: Optional[ProductCatalogEntry] = (
            await self._focal_entries(ctx.tenant_id, [ctx.product_id])
        ).get(ctx.product_id)
        if focal is None:
            logger.warning("content_similarity focal not found tenant=%s product_id=%s", ctx.tenant_id, ctx.product_id)
            return []
        if focal.category_id is None:
            logger.info("content_similarity focal has no category product_id=%s", ctx.product_id)
            return []

        scores = await self._scored_candidates(ctx.tenant_id, focal, config, exclude=set())
        items = [
            RecommendationScore(
                product_id=pid,
                score=s,
                reason=REASON_SIMILAR,
                strategy=self.name.value,
                confidence=min(1.0, s),
            )
            for pid, s in scores.items()
        ]
        return rank(items)[: ctx.limit]

    async def _similar_to_views(self, ctx: RecommendationContext, config: StrategyConfig) -> List[RecommendationScore]:
        profile = self.profiles.get(ctx.user_id)
        if profile is None or not profile.recent_views:
            return []

        focals = await self._focal_entries(ctx.tenant_id, list(profile.recent_views))
        exclude = profile.viewed | profile.purchased
        totals: Dict[str, float] = defaultdict(float)
        for view_id in profile.recent_views:
            focal = focals.get(view_id)
            if focal is None:
                continue
            for pid, s in (await self._scored_candidates(ctx.tenant_id, focal, config, exclude)).items():
                totals[pid] += s

        n_views = len(profile.recent_views)
        items = [
            RecommendationScore(
                product_id=pid,
                score=total / n_views,
                reason=REASON_SIMILAR_TO_VIEWS,
                strategy=self.name.value,
                confidence=min(1.0, total / n_views),
            )
            for pid, total in totals.items()
        ]
        logger.debug("content_similarity views=%s candidates=%s user_id=%s", n_views, len(items), ctx.user_id)
        return rank(items)[: ctx.limit]
