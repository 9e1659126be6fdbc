from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Collection

from prometheus_client import Counter

from .cache_storage import CacheStorage, CacheStorageError
from .categories import display_name, slugify
from .taxonomy import CategoryNode, CategoryStore

logger = logging.getLogger(__name__)

CACHE_DURATION = 7 * 24 * 60 * 60
ROOT_KEY = "root"
SUBCATS_PREFIX = "subcats:"

CACHE_LOOKUPS = Counter(
    "catmenu_category_cache_lookups_total",
    "Category cache lookups by result.",
    ["result"],
)


@dataclass(frozen=True)
class MenuCategory:
    """Presentation record cached for one category."""

    id: int
    name: str
    slug: str
    url: str
    parent_id: int = 0

    def public(self) -> dict[str, str]:
        return {"name": self.name, "slug": self.slug, "url": self.url}


def cache_key(parent_id: int | None = None) -> str:
    """Storage key for the children of ``parent_id``; root for empty or non-positive ids."""

    if parent_id and parent_id > 0:
        return f"{SUBCATS_PREFIX}{parent_id}"
    return ROOT_KEY


class CategoryCache:
    """Per-parent cache of sorted, formatted child categories."""

    def __init__(
        self,
        store: CategoryStore,
        storage: CacheStorage,
        *,
        excluded_ids: Collection[int] = (),
        custom_root_id: int | None = None,
        ttl_seconds: int = CACHE_DURATION,
    ) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        self._store = store
        self._storage = storage
        self.excluded_ids = frozenset(excluded_ids)
        self.custom_root_id = custom_root_id if custom_root_id and custom_root_id > 0 else None
        self._ttl_seconds = ttl_seconds

    def get(self, parent_id: int | None = None) -> tuple[MenuCategory, ...]:
        """Return the children of ``parent_id``, building the entry on a miss.

        The store is only consulted on a miss. Store failures propagate and
        leave the entry absent; storage failures turn into a rebuild.
        """

        key = cache_key(parent_id)
        cached = self._read(key)
        if cached is not None:
            CACHE_LOOKUPS.labels(result="hit").inc()
            return cached
        CACHE_LOOKUPS.labels(result="miss").inc()

        lookup_id = parent_id if key != ROOT_KEY else (self.custom_root_id or 0)
        children = self._build(lookup_id)
        self._write(key, children)
        logger.info(
            json.dumps(
                {"event": "category cache rebuilt", "key": key, "children": len(children)}
            )
        )
        return children

    def invalidate(self, category_id: int, parent_id: int | None = None) -> None:
        """Drop the entries a change to ``category_id`` makes stale.

        ``parent_id`` is the node's post-edit parent; it is looked up in the
        store when not given.
        """

        if category_id > 0:
            self.forget(category_id)
        if parent_id is None:
            node = self._store.get(category_id)
            if node is None:
                logger.info(
                    json.dumps({"event": "invalidate unknown category", "category_id": category_id})
                )
                return
            parent_id = node.parent_id
        self.forget(parent_id)

    def forget(self, parent_id: int | None) -> None:
        """Drop the entry holding the children of ``parent_id``."""

        if parent_id and parent_id > 0:
            self._delete(cache_key(parent_id))
            if parent_id == self.custom_root_id:
                self._delete(ROOT_KEY)
        elif self.custom_root_id is None:
            self._delete(ROOT_KEY)

    def clear_all(self) -> bool:
        """Drop the root entry and every per-parent entry.

        Returns ``False`` when the storage failed, not when nothing was cached.
        """

        try:
            self._storage.delete(ROOT_KEY)
            removed = self._storage.delete_prefix(SUBCATS_PREFIX)
        except CacheStorageError:
            logger.warning("category cache clear failed", exc_info=True)
            return False
        logger.info(json.dumps({"event": "category cache cleared", "removed": removed}))
        return True

    def purge_expired(self) -> int:
        try:
            return self._storage.purge_expired()
        except CacheStorageError:
            logger.warning("category cache purge failed", exc_info=True)
            return 0

    def _build(self, parent_id: int) -> tuple[MenuCategory, ...]:
        nodes = self._store.list_children(parent_id, self.excluded_ids)
        visible = [node for node in nodes if node.id not in self.excluded_ids]
        visible.sort(key=lambda node: (node.name.casefold(), node.id))
        return tuple(self._format(node) for node in visible)

    def _format(self, node: CategoryNode) -> MenuCategory:
        return MenuCategory(
            id=node.id,
            name=display_name(node.name),
            slug=slugify(node.slug),
            url=self._store.permalink(node),
            parent_id=node.parent_id,
        )

    def _read(self, key: str) -> tuple[MenuCategory, ...] | None:
        try:
            raw = self._storage.get(key)
        except CacheStorageError:
            logger.warning("category cache read failed for %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return tuple(MenuCategory(**item) for item in raw)
        except (TypeError, ValueError):
            logger.warning("discarding malformed category cache entry %s", key)
            return None

    def _write(self, key: str, children: tuple[MenuCategory, ...]) -> None:
        payload: list[dict[str, Any]] = [asdict(child) for child in children]
        try:
            self._storage.set(key, payload, self._ttl_seconds)
        except CacheStorageError:
            logger.warning("category cache write failed for %s", key, exc_info=True)

    def _delete(self, key: str) -> None:
        try:
            self._storage.delete(key)
        except CacheStorageError:
            logger.warning("category cache delete failed for %s", key, exc_info=True)


__all__ = [
    "CACHE_DURATION",
    "CategoryCache",
    "MenuCategory",
    "ROOT_KEY",
    "SUBCATS_PREFIX",
    "cache_key",
]
