# shopreco/domain/repositories/interaction_repo.py

from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Protocol, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from shopreco.domain.models.product import CatalogFilter, InteractionRecord, ProductCatalogEntry
from shopreco.domain.services.filters import catalog_query, qualifying_statuses

logger = logging.getLogger(__name__)


class InteractionStore(Protocol):
    """
    Read-only query contract the engine needs from the catalog and order history.
    Order-based queries only ever see qualifying (processing/completed) orders.
    """

    async def find_orders_containing(self, tenant_id: str, product_id: str, recency_limit: int) -> List[str]: ...

    async def count_product_co_occurrences(
        self, tenant_id: str, order_ids: Sequence[str], exclude_product_id: str
    ) -> List[Tuple[str, int]]: ...

    async def find_catalog_entries(self, tenant_id: str, filt: CatalogFilter) -> List[ProductCatalogEntry]: ...

    async def find_interactions_in_window(self, tenant_id: str, since: datetime) -> List[InteractionRecord]: ...

    async def find_user_order_history(self, tenant_id: str, user_id: str, limit: int) -> List[InteractionRecord]: ...


_PRODUCT_PROJECTION = {
    "_id": 0,
    "product_id": 1,
    "name": 1,
    "slug": 1,
    "category_id": 1,
    "base_price": 1,
    "image_url": 1,
    "stock": 1,
    "published": 1,
    "featured": 1,
    "created_at": 1,
}

# Flattens an order document into one row per line item
_UNWIND_ITEMS = [
    {"$unwind": "$items"},
    {"$project": {
        "_id": 0,
        "order_id": 1,
        "user_id": 1,
        "status": 1,
        "ordered_at": "$created_at",
        "product_id": "$items.product_id",
        "quantity": {"$ifNull": ["$items.quantity", 1]},
        "category_id": "$items.category_id",
    }},
]


class MongoInteractionStore:
    """
    InteractionStore backed by the 'products' and 'orders' collections.

    products: { tenant_id, product_id, name, slug, category_id, base_price, image_url,
                stock, published, featured, created_at }
    orders:   { tenant_id, order_id, user_id, status, created_at,
                items: [{ product_id, quantity, category_id }] }
    """

    def __init__(self, db: AsyncIOMotorDatabase, products: str = "products", orders: str = "orders"):
        self.products = db[products]
        self.orders = db[orders]

    async def find_orders_containing(self, tenant_id: str, product_id: str, recency_limit: int) -> List[str]:
        cursor = (
            self.orders.find(
                {
                    "tenant_id": tenant_id,
                    "status": {"$in": qualifying_statuses()},
                    "items.product_id": product_id,
                },
                {"_id": 0, "order_id": 1},
            )
            .sort("created_at", -1)
            .limit(recency_limit)
        )
        return [doc["order_id"] async for doc in cursor]

    async def count_product_co_occurrences(
        self, tenant_id: str, order_ids: Sequence[str], exclude_product_id: str
    ) -> List[Tuple[str, int]]:
        if not order_ids:
            return []
        pipeline = [
            {"$match": {
                "tenant_id": tenant_id,
                "order_id": {"$in": list(order_ids)},
                "status": {"$in": qualifying_statuses()},
            }},
            {"$unwind": "$items"},
            {"$match": {"items.product_id": {"$ne": exclude_product_id}}},
            # an order listing the same product twice still counts once
            {"$group": {"_id": "$items.product_id", "orders": {"$addToSet": "$order_id"}}},
            {"$project": {"_id": 0, "product_id": "$_id", "count": {"$size": "$orders"}}},
            {"$sort": {"count": -1, "product_id": 1}},
        ]
        docs = await self.orders.aggregate(pipeline).to_list(length=None)
        return [(d["product_id"], int(d["count"])) for d in docs]

    async def find_catalog_entries(self, tenant_id: str, filt: CatalogFilter) -> List[ProductCatalogEntry]:
        query = catalog_query(tenant_id, filt)
        logger.debug("catalog query=%s", query)
        cursor = self.products.find(query, _PRODUCT_PROJECTION).sort("product_id", 1)
        return [ProductCatalogEntry.model_validate(doc) async for doc in cursor]

    async def find_interactions_in_window(self, tenant_id: str, since: datetime) -> List[InteractionRecord]:
        pipeline = [
            {"$match": {
                "tenant_id": tenant_id,
                "status": {"$in": qualifying_statuses()},
                "created_at": {"$gte": since},
            }},
            *_UNWIND_ITEMS,
        ]
        docs = await self.orders.aggregate(pipeline).to_list(length=None)
        return [InteractionRecord.model_validate(d) for d in docs]

    async def find_user_order_history(self, tenant_id: str, user_id: str, limit: int) -> List[InteractionRecord]:
        pipeline = [
            {"$match": {
                "tenant_id": tenant_id,
                "user_id": user_id,
                "status": {"$in": qualifying_statuses()},
            }},
            {"$sort": {"created_at": -1}},
            {"$limit": limit},
            *_UNWIND_ITEMS,
        ]
        docs = await self.orders.aggregate(pipeline).to_list(length=None)
        return [InteractionRecord.model_validate(d) for d in docs]
