"""Taxonomy store backed by the ``categories`` table."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Collection, Literal, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..models import Category
from .categories import slugify

logger = logging.getLogger(__name__)

# Guards permalink resolution against parent cycles.
MAX_DEPTH = 32


class CategoryStoreError(RuntimeError):
    """The taxonomy backend could not answer a lookup or apply an edit."""


@dataclass(frozen=True)
class CategoryNode:
    id: int
    name: str
    slug: str
    parent_id: int
    post_count: int = 0


@dataclass(frozen=True)
class TaxonomyEvent:
    """Published after a taxonomy edit has been committed."""

    kind: Literal["created", "edited", "deleted"]
    category_id: int
    parent_id: int
    previous_parent_id: int | None = None


Listener = Callable[[TaxonomyEvent], None]


class Subscription:
    """Handle returned by :meth:`SqlCategoryStore.subscribe`."""

    def __init__(self, store: "SqlCategoryStore", listener: Listener) -> None:
        self._store = store
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._store._unsubscribe(self)
            self.active = False


class CategoryStore(Protocol):
    def list_children(
        self, parent_id: int, excluded_ids: Collection[int] = ()
    ) -> list[CategoryNode]: ...

    def get(self, category_id: int) -> CategoryNode | None: ...

    def permalink(self, category: CategoryNode) -> str: ...


def _to_node(row: Category) -> CategoryNode:
    return CategoryNode(
        id=row.id,
        name=row.name,
        slug=row.slug,
        parent_id=row.parent_id or 0,
        post_count=row.post_count or 0,
    )


class SqlCategoryStore:
    """Hierarchical category store with post-commit change notifications."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        site_url: str = "http://localhost",
        category_base: str = "category",
        hide_empty: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._site_url = site_url.rstrip("/")
        self._category_base = category_base.strip("/")
        self.hide_empty = hide_empty
        self._listeners: list[Subscription] = []
        self._lock = threading.Lock()

    # Lookups

    def list_children(
        self, parent_id: int, excluded_ids: Collection[int] = ()
    ) -> list[CategoryNode]:
        stmt = select(Category).where(Category.parent_id == parent_id)
        if excluded_ids:
            stmt = stmt.where(Category.id.not_in(list(excluded_ids)))
        if self.hide_empty:
            stmt = stmt.where(Category.post_count > 0)
        stmt = stmt.order_by(func.lower(Category.name), Category.id)
        session = self._session_factory()
        try:
            return [_to_node(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise CategoryStoreError(f"children lookup failed for parent {parent_id}") from exc
        finally:
            session.close()

    def get(self, category_id: int) -> CategoryNode | None:
        session = self._session_factory()
        try:
            row = session.get(Category, category_id)
            return _to_node(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise CategoryStoreError(f"lookup failed for category {category_id}") from exc
        finally:
            session.close()

    def permalink(self, category: CategoryNode) -> str:
        """Return ``{site}/{base}/{ancestor slugs}/{slug}/``."""

        slugs = [category.slug]
        parent_id = category.parent_id
        seen = {category.id}
        session = self._session_factory()
        try:
            while parent_id and parent_id not in seen and len(slugs) < MAX_DEPTH:
                seen.add(parent_id)
                parent = session.get(Category, parent_id)
                if parent is None:
                    break
                slugs.append(parent.slug)
                parent_id = parent.parent_id or 0
        except SQLAlchemyError as exc:
            raise CategoryStoreError(f"permalink lookup failed for {category.id}") from exc
        finally:
            session.close()
        path = "/".join(reversed(slugs))
        if self._category_base:
            return f"{self._site_url}/{self._category_base}/{path}/"
        return f"{self._site_url}/{path}/"

    # Edits

    def create(
        self,
        name: str,
        *,
        slug: str | None = None,
        parent_id: int = 0,
        post_count: int = 0,
    ) -> CategoryNode:
        row = Category(
            name=name,
            slug=slugify(slug or name),
            parent_id=parent_id,
            post_count=post_count,
        )
        session = self._session_factory()
        try:
            session.add(row)
            session.commit()
            node = _to_node(row)
        except SQLAlchemyError as exc:
            session.rollback()
            raise CategoryStoreError(f"could not create category {name!r}") from exc
        finally:
            session.close()
        self._publish(TaxonomyEvent("created", node.id, node.parent_id))
        return node

    def update(
        self,
        category_id: int,
        *,
        name: str | None = None,
        slug: str | None = None,
        parent_id: int | None = None,
        post_count: int | None = None,
    ) -> CategoryNode:
        session = self._session_factory()
        try:
            row = session.get(Category, category_id)
            if row is None:
                raise LookupError(f"category {category_id} does not exist")
            previous_parent = row.parent_id or 0
            if name is not None:
                row.name = name
            if slug is not None:
                row.slug = slugify(slug)
            if parent_id is not None:
                row.parent_id = parent_id
            if post_count is not None:
                row.post_count = post_count
            session.commit()
            node = _to_node(row)
        except SQLAlchemyError as exc:
            session.rollback()
            raise CategoryStoreError(f"could not update category {category_id}") from exc
        finally:
            session.close()
        self._publish(
            TaxonomyEvent(
                "edited",
                node.id,
                node.parent_id,
                previous_parent if previous_parent != node.parent_id else None,
            )
        )
        return node

    def delete(self, category_id: int) -> bool:
        """Delete a category, re-parenting its children to its parent."""

        session = self._session_factory()
        try:
            row = session.get(Category, category_id)
            if row is None:
                return False
            parent_id = row.parent_id or 0
            children = session.scalars(
                select(Category).where(Category.parent_id == category_id)
            ).all()
            for child in children:
                child.parent_id = parent_id
            session.delete(row)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise CategoryStoreError(f"could not delete category {category_id}") from exc
        finally:
            session.close()
        self._publish(TaxonomyEvent("deleted", category_id, parent_id))
        for child in children:
            self._publish(TaxonomyEvent("edited", child.id, parent_id, category_id))
        return True

    # Notifications

    def subscribe(self, listener: Listener) -> Subscription:
        subscription = Subscription(self, listener)
        with self._lock:
            self._listeners.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._listeners:
                self._listeners.remove(subscription)

    def _publish(self, event: TaxonomyEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug(json.dumps({"event": f"category {event.kind}", "category_id": event.category_id}))
        for subscription in listeners:
            subscription.listener(event)


__all__ = [
    "CategoryNode",
    "CategoryStore",
    "CategoryStoreError",
    "MAX_DEPTH",
    "SqlCategoryStore",
    "Subscription",
    "TaxonomyEvent",
]
