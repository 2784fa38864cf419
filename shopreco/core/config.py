from functools import lru_cache
from typing import Literal
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "ShopReco"
    DEBUG: bool = False
    GIT_SHA: str = "unknown"
    ENGINE_LOG_LEVEL: str = ""   # e.g. "DEBUG" to trace strategy runs only

    # Mongo
    MONGO_URI: str = ""
    MONGO_DB: str = "shopreco"

    # Redis (optional, memoization is skipped without it)
    REDIS_URL: str = ""

    # CORS (CSV)
    ALLOWED_ORIGINS: str = ""

    # Cache config (seconds)
    cache_prefix: str = "reco"
    co_occurrence_cache_ttl: int = 3600        # 1 hour
    content_similarity_cache_ttl: int = 7200   # 2 hours
    trending_cache_ttl: int = 3600             # 1 hour
    personalized_cache_ttl: int = 30 * 60      # 30 minutes

    # Engine
    reco_deadline_s: float = 2.0               # overall budget for a combined request
    default_limit: int = 12
    recent_views_size: int = 5

    # Strategy defaults (overridable per request through StrategyConfig.params)
    co_occurrence_recency_limit: int = 1000
    similarity_price_tolerance: float = 0.3
    similarity_price_weight: float = 0.3
    similarity_name_weight: float = 0.7
    trending_window_days: int = 30
    cf_min_similarity: float = 0.5
    featured_bonus: float = 0.2
    top_categories: int = 3
    user_history_limit: int = 20

    # API
    api_prefix: str = "/api"

    # pydantic-settings config will be set dynamically in the factory below
    model_config = SettingsConfigDict(env_file=None, case_sensitive=True)

@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
