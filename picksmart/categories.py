"""
Category hierarchy reconstruction from delimited path strings.
"""
import hashlib
import re
from typing import Iterable, List, Optional

from picksmart.logger import logger
from picksmart.models.catalog import Category, split_category_path, join_category_path
from picksmart.store.base import BaseStore, CatalogRepository

# All category writes share one session so concurrent builds serialize.
TREE_SESSION = ("categories", "tree")


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def category_slug(name: str, path: str) -> str:
    """ASCII slug of the name; names with no ASCII letters or digits get a digest of path and name."""
    slug = slugify(name)
    if slug:
        return slug
    digest = hashlib.sha1(f"{path}\n{name}".encode("utf-8")).hexdigest()[:10]
    return f"category-{digest}"


def expand_prefixes(paths: Iterable[str]) -> List[str]:
    """
    Every prefix of every path, normalized and sorted.

    Lexicographic order puts a prefix before any path that extends it,
    so iterating the result creates parents before children.
    """
    candidates = set()
    for path in paths:
        parts = split_category_path(path or "")
        for i in range(1, len(parts) + 1):
            candidates.add(join_category_path(parts[:i]))
    return sorted(candidates)


class CategoryHierarchyBuilder:
    """Materializes category paths as a parent-linked tree in the store."""

    def __init__(self, store: BaseStore):
        self.store = store

    async def build(self, paths: Iterable[str]) -> List[Category]:
        """Create every missing prefix node. Returns the created nodes in creation order."""
        candidates = expand_prefixes(paths)
        created: List[Category] = []

        async with self.store.session(*TREE_SESSION) as repo:
            for path in candidates:
                category = await self._create_node(repo, path)
                if category:
                    created.append(category)

        if created:
            logger.info(
                f"Created {len(created)} categories from {len(candidates)} paths",
                extra={"extra": {"component": "categories", "created": len(created)}}
            )
        return created

    async def resolve(self, path: Optional[str]) -> Optional[Category]:
        """Look up the node for a path, building it and its ancestors when missing."""
        if not path:
            return None

        candidates = expand_prefixes([path])
        if not candidates:
            return None

        async with self.store.session(*TREE_SESSION) as repo:
            for candidate in candidates:
                await self._create_node(repo, candidate)
            return await repo.get_category_by_path(candidates[-1])

    async def _create_node(self, repo: CatalogRepository, path: str) -> Optional[Category]:
        if await repo.get_category_by_path(path):
            return None

        parts = split_category_path(path)
        parent = None
        if len(parts) > 1:
            parent = await repo.get_category_by_path(join_category_path(parts[:-1]))

        name = await self._unique_name(repo, path, parts[-1], parts[-2] if len(parts) > 1 else None)

        category = await repo.create_category(Category(
            name=name,
            slug=category_slug(name, path),
            path=path,
            level=len(parts) - 1,
            parent_id=parent.id if parent else None,
        ))
        logger.debug(f"Created category {path} as {name!r}")
        return category

    @staticmethod
    async def _unique_name(repo: CatalogRepository, path: str, name: str, parent_name: Optional[str]) -> str:
        """Leaf name, qualified with the parent's name when the name or its slug is taken."""

        async def taken(candidate: str) -> bool:
            return bool(
                await repo.get_category_by_name(candidate)
                or await repo.get_category_by_slug(category_slug(candidate, path))
            )

        if not await taken(name):
            return name

        base = f"{name} ({parent_name})" if parent_name else name
        candidate = base
        suffix = 2
        while await taken(candidate):
            candidate = f"{base} {suffix}"
            suffix += 1
        return candidate
