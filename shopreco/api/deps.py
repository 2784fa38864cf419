# shopreco/api/deps.py
from fastapi import HTTPException, Request
from shopreco.domain.services.engine import RecommendationEngine


def engine_dep(request: Request) -> RecommendationEngine:
    """Engine built by the lifespan hook; 503 while the store is unavailable."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Recommendation engine not available.")
    return engine
