from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException

from shopreco.api.deps import engine_dep
from shopreco.api.v1.schemas.reco import ProfileOut, PurchaseIn, RatingIn, ViewIn
from shopreco.domain.models.reco import EngineStats
from shopreco.domain.services.engine import RecommendationEngine

import logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.post("/users/{user_id}/views", status_code=204)
async def record_view(user_id: str, body: ViewIn, engine: RecommendationEngine = Depends(engine_dep)):
    await engine.record_view(user_id, body.product_id)


@router.post("/users/{user_id}/purchases", status_code=204)
async def record_purchase(user_id: str, body: PurchaseIn, engine: RecommendationEngine = Depends(engine_dep)):
    await engine.record_purchase(user_id, body.product_id, body.category_id)


@router.post("/users/{user_id}/ratings", status_code=204)
async def record_rating(user_id: str, body: RatingIn, engine: RecommendationEngine = Depends(engine_dep)):
    try:
        await engine.record_rating(user_id, body.product_id, body.rating)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/users/{user_id}/profile", response_model=ProfileOut)
async def get_profile(user_id: str, engine: RecommendationEngine = Depends(engine_dep)):
    profile = engine.get_user_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="No interactions recorded for this user.")
    return ProfileOut(
        user_id=profile.user_id,
        viewed=sorted(profile.viewed),
        purchased=sorted(profile.purchased),
        ratings=profile.ratings,
        categories=profile.categories,
        recent_views=profile.recent_views,
        updated_at=profile.updated_at,
    )


@router.get("/recommendations/stats", response_model=EngineStats)
async def stats(engine: RecommendationEngine = Depends(engine_dep)):
    result = engine.get_stats()
    logger.info("Response: stats users=%s combined=%s", result.total_users, result.combined_requests)
    return result
