from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List, FrozenSet
from datetime import datetime


def tokenize(text: Optional[str]) -> FrozenSet[str]:
    """Lower-cased whitespace tokens of a product name."""
    return frozenset((text or "").lower().split())


class ProductCatalogEntry(BaseModel):
    product_id: str
    name: str
    slug: str = ""
    category_id: Optional[str] = None
    base_price: float = Field(ge=0)
    image_url: Optional[str] = None
    stock: int = 0
    published: bool = True
    featured: bool = False
    created_at: Optional[datetime] = None

    model_config = {"frozen": True}  # immuable = safe

    @property
    def tokens(self) -> FrozenSet[str]:
        return tokenize(self.name)

    @property
    def eligible(self) -> bool:
        """Recommendable right now: in stock and published."""
        return self.stock > 0 and self.published


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Orders that count towards co-occurrence, trending and purchase history
QUALIFYING_STATUSES = frozenset({OrderStatus.PROCESSING, OrderStatus.COMPLETED})


class InteractionRecord(BaseModel):
    """One row per (order, product) pair."""
    order_id: str
    product_id: str
    quantity: int = 1
    category_id: Optional[str] = None
    ordered_at: datetime
    status: OrderStatus = OrderStatus.COMPLETED
    user_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def qualifying(self) -> bool:
        return self.status in QUALIFYING_STATUSES


class CatalogFilter(BaseModel):
    """
    Query contract for catalog lookups.
    Defaults select recommendable products only (stock > 0, published).
    """
    category_ids: Optional[List[str]] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock: bool = True
    published: bool = True
    ids_in: Optional[List[str]] = None
    ids_not_in: Optional[List[str]] = None

    model_config = {"frozen": True}

    def matches(self, entry: ProductCatalogEntry) -> bool:
        if self.in_stock and entry.stock <= 0:
            return False
        if self.published and not entry.published:
            return False
        if self.category_ids is not None and entry.category_id not in self.category_ids:
            return False
        if self.min_price is not None and entry.base_price < self.min_price:
            return False
        if self.max_price is not None and entry.base_price > self.max_price:
            return False
        if self.ids_in is not None and entry.product_id not in self.ids_in:
            return False
        if self.ids_not_in and entry.product_id in self.ids_not_in:
            return False
        return True
