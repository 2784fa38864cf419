# shopreco/api/v1/routers/recommendations.py
from fastapi import APIRouter, Depends, Query
from typing import List, Optional
import logging
import time

from shopreco.api.deps import engine_dep
from shopreco.api.v1.schemas.reco import CombinedIn, RecoItemOut, RecoListOut
from shopreco.domain.models.product import CatalogFilter
from shopreco.domain.models.reco import RecommendationScore
from shopreco.domain.services.engine import RecommendationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["recommendations"])


async def _to_out(engine: RecommendationEngine, tenant_id: str, scores: List[RecommendationScore]) -> RecoListOut:
    """Attach display fields (name, slug, price, image) to the scored items."""
    details = {}
    if scores:
        try:
            entries = await engine.store.find_catalog_entries(
                tenant_id,
                CatalogFilter(ids_in=[s.product_id for s in scores], in_stock=False, published=False),
            )
            details = {e.product_id: e for e in entries}
        except Exception as e:
            # scores are still worth returning without display fields
            logger.warning("hydration failed tenant=%s err=%s", tenant_id, e)

    items = []
    for s in scores:
        entry = details.get(s.product_id)
        items.append(
            RecoItemOut(
                **s.model_dump(),
                name=entry.name if entry else None,
                slug=entry.slug if entry else None,
                base_price=entry.base_price if entry else None,
                image_url=entry.image_url if entry else None,
            )
        )
    return RecoListOut(items=items, count=len(items))


@router.get("/products/{product_id}/frequently-bought-together", response_model=RecoListOut)
async def frequently_bought_together(
    tenant_id: str,
    product_id: str,
    limit: int = Query(6, ge=1, le=50),
    engine: RecommendationEngine = Depends(engine_dep),
):
    t0 = time.perf_counter()
    scores = await engine.get_frequently_bought_together(tenant_id, product_id, limit)
    logger.info(
        "Response: frequently_bought_together tenant=%s product_id=%s count=%s elapsed_time=%.4fs",
        tenant_id, product_id, len(scores), time.perf_counter() - t0,
    )
    return await _to_out(engine, tenant_id, scores)


@router.get("/products/{product_id}/similar", response_model=RecoListOut)
async def similar_products(
    tenant_id: str,
    product_id: str,
    limit: int = Query(6, ge=1, le=50),
    engine: RecommendationEngine = Depends(engine_dep),
):
    t0 = time.perf_counter()
    scores = await engine.get_similar_products(tenant_id, product_id, limit)
    logger.info(
        "Response: similar_products tenant=%s product_id=%s count=%s elapsed_time=%.4fs",
        tenant_id, product_id, len(scores), time.perf_counter() - t0,
    )
    return await _to_out(engine, tenant_id, scores)


@router.get("/trending", response_model=RecoListOut)
async def trending(
    tenant_id: str,
    limit: int = Query(12, ge=1, le=100),
    window_days: Optional[int] = Query(None, ge=1, le=365),
    engine: RecommendationEngine = Depends(engine_dep),
):
    t0 = time.perf_counter()
    scores = await engine.get_trending_products(tenant_id, limit, window_days=window_days)
    logger.info(
        "Response: trending tenant=%s window_days=%s count=%s elapsed_time=%.4fs",
        tenant_id, window_days, len(scores), time.perf_counter() - t0,
    )
    return await _to_out(engine, tenant_id, scores)


@router.get("/users/{user_id}/recommendations", response_model=RecoListOut)
async def personalized(
    tenant_id: str,
    user_id: str,
    limit: int = Query(12, ge=1, le=100),
    engine: RecommendationEngine = Depends(engine_dep),
):
    t0 = time.perf_counter()
    scores = await engine.get_personalized_recommendations(tenant_id, user_id, limit)
    logger.info(
        "Response: personalized tenant=%s user_id=%s count=%s elapsed_time=%.4fs",
        tenant_id, user_id, len(scores), time.perf_counter() - t0,
    )
    return await _to_out(engine, tenant_id, scores)


@router.get("/users/{user_id}/similar-to-views", response_model=RecoListOut)
async def similar_to_views(
    tenant_id: str,
    user_id: str,
    limit: int = Query(6, ge=1, le=50),
    engine: RecommendationEngine = Depends(engine_dep),
):
    scores = await engine.get_similar_to_recent_views(tenant_id, user_id, limit)
    return await _to_out(engine, tenant_id, scores)


@router.post("/recommendations", response_model=RecoListOut)
async def combined(
    tenant_id: str,
    body: CombinedIn,
    engine: RecommendationEngine = Depends(engine_dep),
):
    """
    Blend of every applicable strategy. Strategies that need a product or a
    user the body does not carry are skipped; an empty list is a valid answer.
    """
    t0 = time.perf_counter()
    scores = await engine.get_combined_recommendations(
        tenant_id,
        user_id=body.user_id,
        product_id=body.product_id,
        limit=body.limit,
        strategies=body.strategies,
        normalize=body.normalize,
    )
    logger.info(
        "Response: combined tenant=%s user_id=%s product_id=%s count=%s elapsed_time=%.4fs",
        tenant_id, body.user_id, body.product_id, len(scores), time.perf_counter() - t0,
    )
    return await _to_out(engine, tenant_id, scores)
