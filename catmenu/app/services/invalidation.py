"""Wire taxonomy change events to category cache invalidation."""

from __future__ import annotations

import json
import logging

from .category_cache import CategoryCache
from .taxonomy import SqlCategoryStore, Subscription, TaxonomyEvent

logger = logging.getLogger(__name__)


class CacheInvalidator:
    """Taxonomy listener evicting the cache entries an event makes stale."""

    def __init__(self, cache: CategoryCache) -> None:
        self.cache = cache

    def __call__(self, event: TaxonomyEvent) -> None:
        self.cache.invalidate(event.category_id, parent_id=event.parent_id)
        previous = event.previous_parent_id
        if previous is not None and previous != event.parent_id:
            self.cache.forget(previous)
        logger.debug(
            json.dumps(
                {
                    "event": "category cache invalidated",
                    "kind": event.kind,
                    "category_id": event.category_id,
                    "parent_id": event.parent_id,
                }
            )
        )


def bind_invalidation(store: SqlCategoryStore, cache: CategoryCache) -> Subscription:
    """Subscribe ``cache`` to ``store`` edits; cancel the returned handle to detach."""

    return store.subscribe(CacheInvalidator(cache))


__all__ = ["CacheInvalidator", "bind_invalidation"]
