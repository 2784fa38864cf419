# api/v1/schemas/reco.py
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from shopreco.domain.models.reco import StrategyConfig


class RecoItemOut(BaseModel):
    product_id: str
    score: float
    reason: str
    strategy: str
    confidence: float
    name: Optional[str] = None
    slug: Optional[str] = None
    base_price: Optional[float] = None
    image_url: Optional[str] = None

class RecoListOut(BaseModel):
    items: List[RecoItemOut]
    count: int


class CombinedIn(BaseModel):
    user_id: Optional[str] = None
    product_id: Optional[str] = None
    limit: int = Field(12, ge=1, le=100)
    strategies: Optional[List[StrategyConfig]] = None
    normalize: bool = False


class ViewIn(BaseModel):
    product_id: str

class PurchaseIn(BaseModel):
    product_id: str
    category_id: Optional[str] = None

class RatingIn(BaseModel):
    product_id: str
    rating: int = Field(ge=1, le=5)


class ProfileOut(BaseModel):
    user_id: str
    viewed: List[str]
    purchased: List[str]
    ratings: Dict[str, int]
    categories: Dict[str, int]
    recent_views: List[str]
    updated_at: datetime
