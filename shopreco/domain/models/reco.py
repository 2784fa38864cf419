from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class StrategyName(str, Enum):
    CO_OCCURRENCE = "co-occurrence"
    CONTENT_SIMILARITY = "content-similarity"
    TRENDING = "trending"
    PERSONALIZED = "personalized"


# Strategy name carried by a product that several strategies recommended
BLENDED = "blended"


class RecommendationScore(BaseModel):
    product_id: str
    score: float = Field(ge=0)
    reason: str
    strategy: str
    confidence: float = Field(default=1.0, ge=0, le=1)
    model_config = {"frozen": True} # immuable = safe


def _positive_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v > 0

def _non_negative(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and v >= 0

def _unit_interval(v: Any) -> bool:
    return _non_negative(v) and v <= 1


# Accepted params per strategy and their validators
STRATEGY_PARAMS: Dict[StrategyName, Dict[str, Callable[[Any], bool]]] = {
    StrategyName.CO_OCCURRENCE: {
        "recency_limit": _positive_int,
    },
    StrategyName.CONTENT_SIMILARITY: {
        "price_tolerance": _unit_interval,
        "price_weight": _non_negative,
        "name_weight": _non_negative,
    },
    StrategyName.TRENDING: {
        "window_days": _positive_int,
    },
    StrategyName.PERSONALIZED: {
        "min_similarity": _unit_interval,
        "featured_bonus": _non_negative,
        "top_categories": _positive_int,
        "history_limit": _positive_int,
    },
}

DEFAULT_WEIGHTS: Dict[StrategyName, float] = {
    StrategyName.CO_OCCURRENCE: 0.3,
    StrategyName.CONTENT_SIMILARITY: 0.3,
    StrategyName.PERSONALIZED: 0.2,
    StrategyName.TRENDING: 0.2,
}


class StrategyConfig(BaseModel):
    """
    Weight and tuning parameters for one strategy in a blended request.
    Params are checked against STRATEGY_PARAMS when the config is built;
    anything missing falls back to the engine settings.
    """
    name: StrategyName
    weight: float = Field(default=1.0, ge=0)
    params: Dict[str, Any] = Field(default_factory=dict)
    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_params(self) -> "StrategyConfig":
        allowed = STRATEGY_PARAMS[self.name]
        for key, value in self.params.items():
            check = allowed.get(key)
            if check is None:
                raise ValueError(f"unknown parameter {key!r} for strategy {self.name.value!r}")
            if not check(value):
                raise ValueError(f"invalid value {value!r} for {self.name.value}.{key}")
        return self

    def param(self, key: str, default: Any) -> Any:
        return self.params.get(key, default)


def default_strategy_configs() -> List[StrategyConfig]:
    return [StrategyConfig(name=name, weight=weight) for name, weight in DEFAULT_WEIGHTS.items()]


class RecommendationContext(BaseModel):
    tenant_id: str
    user_id: Optional[str] = None
    product_id: Optional[str] = None
    limit: int = Field(default=12, ge=1)
    strategies: Optional[List[StrategyConfig]] = None
    normalize: bool = False
    model_config = {"frozen": True}


class EngineStats(BaseModel):
    total_users: int
    combined_requests: int
    strategy_failures: Dict[str, int]
    deadline_overruns: int
