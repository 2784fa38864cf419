# shopreco/core/lifespan.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from shopreco.db import mongo, redis as r
from shopreco.core.config import get_settings
from shopreco.domain.repositories.interaction_repo import MongoInteractionStore
from shopreco.domain.services.engine import RecommendationEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    app.state.engine = None

    # --- Startup ---
    # Mongo is required to serve recommendations
    if settings.MONGO_URI:
        await mongo.connect()
    else:
        logger.warning("No MONGO_URI provided, skipping Mongo connection")

    # Redis is optional: without it nothing is memoized
    if settings.REDIS_URL:
        await r.connect()
    else:
        logger.warning("No REDIS_URL provided, skipping Redis connection")

    try:
        db = mongo.get_db()
    except AssertionError:
        logger.error("Mongo unavailable, recommendation routes will answer 503")
    else:
        app.state.engine = RecommendationEngine(
            store=MongoInteractionStore(db),
            redis=r.get_redis(),
            settings=settings,
        )
        logger.info("Recommendation engine ready")

    yield

    # --- Shutdown ---
    app.state.engine = None
    try:
        await r.disconnect()
    except Exception as e:
        logger.warning("Redis disconnect failed: %s", e)
    try:
        await mongo.disconnect()
    except Exception as e:
        logger.warning("Mongo disconnect failed: %s", e)
