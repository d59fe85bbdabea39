"""
Post-migration checks over persisted counts and samples.
"""
from typing import Any, Dict, List, Tuple

from picksmart.store.base import BaseStore


async def validate_counts(store: BaseStore) -> Tuple[Dict[str, int], List[str]]:
    """Entity counts plus the problems that make a migration look incomplete."""
    counts = await store.counts()

    problems = []
    if not counts.get("products"):
        problems.append("No products found - migration may have failed")
    if not counts.get("categories"):
        problems.append("No categories found - migration may have failed")

    return counts, problems


async def migration_status(store: BaseStore, sample_size: int = 5) -> Dict[str, Any]:
    async with store.session("status", "read") as repo:
        categories = await repo.list_categories()
        products = await repo.list_products(limit=sample_size)

    return {
        "counts": await store.counts(),
        "categories": [
            {"name": c.name, "path": c.path, "level": c.level}
            for c in sorted(categories, key=lambda c: (c.level, c.path))[:sample_size]
        ],
        "products": [p.to_dict() for p in products],
    }
