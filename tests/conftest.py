"""Shared fixtures: in-memory stand-ins for MongoDB and Redis, and a wired engine."""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from shopreco.core.config import Settings
from shopreco.domain.models.product import (
    CatalogFilter,
    InteractionRecord,
    OrderStatus,
    ProductCatalogEntry,
    QUALIFYING_STATUSES,
)
from shopreco.domain.services.engine import RecommendationEngine

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
TENANT = "T1"


def run(coro):
    return asyncio.run(coro)


def product(product_id: str, name: str = None, category_id: Optional[str] = "cat", price: float = 100.0,
            stock: int = 10, published: bool = True, featured: bool = False) -> ProductCatalogEntry:
    return ProductCatalogEntry(
        product_id=product_id,
        name=name or f"Product {product_id}",
        slug=product_id.lower(),
        category_id=category_id,
        base_price=price,
        stock=stock,
        published=published,
        featured=featured,
    )


@dataclass
class Order:
    order_id: str
    product_ids: Sequence[str]
    created_at: datetime = NOW - timedelta(days=1)
    status: OrderStatus = OrderStatus.COMPLETED
    user_id: Optional[str] = None
    categories: Dict[str, str] = field(default_factory=dict)


class FakeStore:
    """InteractionStore over plain lists, one tenant per key."""

    def __init__(self):
        self.products: Dict[str, List[ProductCatalogEntry]] = {}
        self.orders: Dict[str, List[Order]] = {}
        self.calls: Counter = Counter()
        self.fail = False
        self.delay = 0.0

    def add_products(self, *entries: ProductCatalogEntry, tenant: str = TENANT):
        self.products.setdefault(tenant, []).extend(entries)

    def add_orders(self, *orders: Order, tenant: str = TENANT):
        self.orders.setdefault(tenant, []).extend(orders)

    async def _enter(self, name: str):
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("store unreachable")

    def _category_of(self, tenant: str, order: Order, pid: str) -> Optional[str]:
        if pid in order.categories:
            return order.categories[pid]
        for p in self.products.get(tenant, []):
            if p.product_id == pid:
                return p.category_id
        return None

    def _qualifying(self, tenant: str) -> List[Order]:
        return [o for o in self.orders.get(tenant, []) if o.status in QUALIFYING_STATUSES]

    def _records(self, tenant: str, orders: List[Order]) -> List[InteractionRecord]:
        return [
            InteractionRecord(
                order_id=o.order_id,
                product_id=pid,
                category_id=self._category_of(tenant, o, pid),
                ordered_at=o.created_at,
                status=o.status,
                user_id=o.user_id,
            )
            for o in orders
            for pid in o.product_ids
        ]

    async def find_orders_containing(self, tenant_id: str, product_id: str, recency_limit: int) -> List[str]:
        await self._enter("find_orders_containing")
        orders = [o for o in self._qualifying(tenant_id) if product_id in o.product_ids]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [o.order_id for o in orders[:recency_limit]]

    async def count_product_co_occurrences(self, tenant_id: str, order_ids, exclude_product_id: str) -> List[Tuple[str, int]]:
        await self._enter("count_product_co_occurrences")
        wanted = set(order_ids)
        counts: Counter = Counter()
        for o in self._qualifying(tenant_id):
            if o.order_id in wanted:
                counts.update(set(o.product_ids) - {exclude_product_id})
        return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))

    async def find_catalog_entries(self, tenant_id: str, filt: CatalogFilter) -> List[ProductCatalogEntry]:
        await self._enter("find_catalog_entries")
        return sorted((p for p in self.products.get(tenant_id, []) if filt.matches(p)), key=lambda p: p.product_id)

    async def find_interactions_in_window(self, tenant_id: str, since: datetime) -> List[InteractionRecord]:
        await self._enter("find_interactions_in_window")
        return self._records(tenant_id, [o for o in self._qualifying(tenant_id) if o.created_at >= since])

    async def find_user_order_history(self, tenant_id: str, user_id: str, limit: int) -> List[InteractionRecord]:
        await self._enter("find_user_order_history")
        orders = [o for o in self._qualifying(tenant_id) if o.user_id == user_id]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return self._records(tenant_id, orders[:limit])


class FakeRedis:
    """Just enough of redis.asyncio.Redis: get / set(ex=) / delete."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail_get = False
        self.fail_set = False

    async def get(self, key):
        if self.fail_get:
            raise ConnectionError("redis down")
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        if self.fail_set:
            raise ConnectionError("redis down")
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


@pytest.fixture
def settings():
    return Settings(reco_deadline_s=1.0)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def engine(store, redis, settings):
    return RecommendationEngine(store=store, redis=redis, settings=settings, clock=lambda: NOW)


@pytest.fixture
def uncached_engine(store, settings):
    return RecommendationEngine(store=store, redis=None, settings=settings, clock=lambda: NOW)
