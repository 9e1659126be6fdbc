from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Collection

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catmenu.app.services.taxonomy import CategoryNode, CategoryStoreError  # noqa: E402


class FakeStore:
    """In-memory category store recording every children lookup."""

    def __init__(self, nodes: list[CategoryNode] | None = None) -> None:
        self.nodes = {node.id: node for node in nodes or []}
        self.list_calls: list[int] = []
        self.fail = False

    def add(self, id: int, name: str, parent_id: int = 0, slug: str | None = None) -> CategoryNode:
        node = CategoryNode(id=id, name=name, slug=slug or name.lower(), parent_id=parent_id, post_count=1)
        self.nodes[id] = node
        return node

    def list_children(self, parent_id: int, excluded_ids: Collection[int] = ()) -> list[CategoryNode]:
        self.list_calls.append(parent_id)
        if self.fail:
            raise CategoryStoreError("store offline")
        return [
            node
            for node in self.nodes.values()
            if node.parent_id == parent_id and node.id not in excluded_ids
        ]

    def get(self, category_id: int) -> CategoryNode | None:
        if self.fail:
            raise CategoryStoreError("store offline")
        return self.nodes.get(category_id)

    def permalink(self, category: CategoryNode) -> str:
        return f"https://example.test/category/{category.slug}/"


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def session_factory(tmp_path):
    from catmenu.app.db import Base, build_engine, build_sessionmaker
    import catmenu.app.models  # noqa: F401

    engine = build_engine(f"sqlite:///{tmp_path / 'catmenu_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield build_sessionmaker(engine)
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    from catmenu.app.services.taxonomy import SqlCategoryStore

    return SqlCategoryStore(session_factory, site_url="https://shop.test/")


@pytest.fixture
def app_settings(tmp_path):
    from catmenu.app.core.settings import Settings

    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'catmenu_app.db'}",
        SECRET_KEY="test-secret",
        ADMIN_API_TOKEN="admin-token",
        CACHE_PURGE_ENABLED=False,
        SITE_URL="https://shop.test",
    )


@pytest.fixture
def client(app_settings, session_factory) -> Iterator[TestClient]:
    from catmenu.app.main import create_app

    app = create_app(app_settings, session_factory=session_factory)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": "Bearer admin-token"}
