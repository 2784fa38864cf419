from typing import Any, Dict, List

from shopreco.domain.models.product import CatalogFilter, QUALIFYING_STATUSES


def qualifying_statuses() -> List[str]:
    """Order statuses whose line items feed the statistics (sorted for stable queries)."""
    return sorted(s.value for s in QUALIFYING_STATUSES)


def catalog_query(tenant_id: str, filt: CatalogFilter) -> Dict[str, Any]:
    """
    Translate a CatalogFilter into a Mongo query on the 'products' collection.
    Every query is tenant-scoped.
    """
    query: Dict[str, Any] = {"tenant_id": tenant_id}

    if filt.in_stock:
        query["stock"] = {"$gt": 0}
    if filt.published:
        query["published"] = True

    if filt.category_ids is not None:
        query["category_id"] = {"$in": list(filt.category_ids)}

    price: Dict[str, float] = {}
    if filt.min_price is not None:
        price["$gte"] = filt.min_price
    if filt.max_price is not None:
        price["$lte"] = filt.max_price
    if price:
        query["base_price"] = price

    # ids_in and ids_not_in can both be present; combine on the same field
    ids: Dict[str, List[str]] = {}
    if filt.ids_in is not None:
        ids["$in"] = list(filt.ids_in)
    if filt.ids_not_in:
        ids["$nin"] = list(filt.ids_not_in)
    if ids:
        query["product_id"] = ids

    return query
