"""MongoInteractionStore against recording stand-ins for Motor collections."""

from datetime import timedelta

from conftest import NOW, run
from shopreco.domain.models.product import CatalogFilter, OrderStatus
from shopreco.domain.repositories.interaction_repo import MongoInteractionStore


class FakeCursor:
    def __init__(self, docs):
        self.docs = list(docs)
        self.sorts = []
        self.limited = None

    def sort(self, key, direction):
        self.sorts.append((key, direction))
        return self

    def limit(self, n):
        self.limited = n
        return self

    def __aiter__(self):
        async def gen():
            for d in self.docs:
                yield d
        return gen()

    async def to_list(self, length=None):
        return list(self.docs)


class FakeCollection:
    def __init__(self, docs=()):
        self.docs = list(docs)
        self.finds = []
        self.pipelines = []
        self.cursor = None

    def find(self, query, projection=None):
        self.finds.append((query, projection))
        self.cursor = FakeCursor(self.docs)
        return self.cursor

    def aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        return FakeCursor(self.docs)


def _store(products=(), orders=()):
    db = {"products": FakeCollection(products), "orders": FakeCollection(orders)}
    return MongoInteractionStore(db), db


def test_find_orders_containing_is_recent_first_and_bounded():
    store, db = _store(orders=[{"order_id": "o2"}, {"order_id": "o1"}])

    ids = run(store.find_orders_containing("T1", "P1", 50))

    assert ids == ["o2", "o1"]
    query, _ = db["orders"].finds[0]
    assert query == {"tenant_id": "T1", "status": {"$in": ["completed", "processing"]}, "items.product_id": "P1"}
    assert db["orders"].cursor.sorts == [("created_at", -1)]
    assert db["orders"].cursor.limited == 50


def test_co_occurrence_counts_distinct_orders():
    store, db = _store(orders=[{"product_id": "P2", "count": 4}, {"product_id": "P3", "count": 2}])

    counts = run(store.count_product_co_occurrences("T1", ["o1", "o2"], "P1"))

    assert counts == [("P2", 4), ("P3", 2)]
    pipeline = db["orders"].pipelines[0]
    assert pipeline[0]["$match"]["order_id"] == {"$in": ["o1", "o2"]}
    assert {"$match": {"items.product_id": {"$ne": "P1"}}} in pipeline
    group = next(stage["$group"] for stage in pipeline if "$group" in stage)
    assert group["orders"] == {"$addToSet": "$order_id"}


def test_co_occurrence_without_orders_skips_the_query():
    store, db = _store()

    assert run(store.count_product_co_occurrences("T1", [], "P1")) == []
    assert db["orders"].pipelines == []


def test_catalog_entries_are_validated_and_sorted():
    store, db = _store(products=[
        {"product_id": "A", "name": "Shirt", "base_price": 10.0, "stock": 3, "category_id": "c"},
    ])

    entries = run(store.find_catalog_entries("T1", CatalogFilter(category_ids=["c"])))

    assert entries[0].product_id == "A"
    assert entries[0].eligible
    query, projection = db["products"].finds[0]
    assert query["tenant_id"] == "T1"
    assert projection["_id"] == 0
    assert db["products"].cursor.sorts == [("product_id", 1)]


def test_interactions_in_window_unwind_line_items():
    since = NOW - timedelta(days=30)
    store, db = _store(orders=[{
        "order_id": "o1", "user_id": "u1", "status": "completed", "ordered_at": NOW,
        "product_id": "P1", "quantity": 2, "category_id": "c",
    }])

    records = run(store.find_interactions_in_window("T1", since))

    assert records[0].status is OrderStatus.COMPLETED
    assert records[0].quantity == 2
    match = db["orders"].pipelines[0][0]["$match"]
    assert match["created_at"] == {"$gte": since}
    assert {"$unwind": "$items"} in db["orders"].pipelines[0]


def test_user_history_limits_orders_before_unwinding():
    store, db = _store()

    assert run(store.find_user_order_history("T1", "u1", 20)) == []
    pipeline = db["orders"].pipelines[0]
    assert pipeline[0]["$match"]["user_id"] == "u1"
    assert pipeline.index({"$limit": 20}) < pipeline.index({"$unwind": "$items"})
