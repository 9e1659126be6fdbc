import pytest

from catmenu.app.core.security import ADMIN_NONCE_ACTION, PUBLIC_NONCE_ACTION
from catmenu.app.services.cache_storage import CacheStorageError
from catmenu.app.services.taxonomy import CategoryStoreError


@pytest.fixture
def seeded(client):
    store = client.app.state.category_store
    books = store.create("Books", post_count=4)
    store.create("Films", post_count=2)
    store.create("poetry", parent_id=books.id, post_count=1)
    store.create("Essays &amp; Letters", slug="essays", parent_id=books.id, post_count=1)
    return {"books": books}


def _nonce(client):
    return client.app.state.nonce_signer.create(PUBLIC_NONCE_ACTION)


def test_config_exposes_menu_settings_and_root(client, seeded):
    resp = client.get("/api/menu/config")

    assert resp.status_code == 200
    body = resp.json()
    assert body["levels"] == 3
    assert body["layout"] == "vertical"
    assert body["labels"] == ["Level 1", "Level 2", "Level 3", "Level 4", "Level 5"]
    assert [item["name"] for item in body["root"].values()] == ["BOOKS", "FILMS"]
    assert client.app.state.nonce_signer.verify(body["nonce"], PUBLIC_NONCE_ACTION)


def test_subcategories_envelope(client, seeded):
    books = seeded["books"]
    resp = client.post(
        "/api/menu/subcategories",
        data={"parent_id": str(books.id), "security": _nonce(client)},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert list(body["data"].values()) == [
        {
            "name": "ESSAYS & LETTERS",
            "slug": "essays",
            "url": "https://shop.test/category/books/essays/",
        },
        {
            "name": "POETRY",
            "slug": "poetry",
            "url": "https://shop.test/category/books/poetry/",
        },
    ]


@pytest.mark.parametrize("raw", ["abc", "-4", "", "0", "99999999999999999999999"])
def test_malformed_parent_id_reads_root(client, seeded, raw):
    resp = client.post(
        "/api/menu/subcategories", data={"parent_id": raw, "security": _nonce(client)}
    )

    assert resp.status_code == 200
    assert [item["name"] for item in resp.json()["data"].values()] == ["BOOKS", "FILMS"]


def test_bad_token_is_rejected_before_cache(client, seeded, monkeypatch):
    cache = client.app.state.category_cache

    def explode(*args, **kwargs):
        raise AssertionError("cache must not be touched")

    monkeypatch.setattr(cache, "get", explode)
    for token in ("", "forged", "é", client.app.state.nonce_signer.create(ADMIN_NONCE_ACTION)):
        resp = client.post(
            "/api/menu/subcategories", data={"parent_id": "1", "security": token}
        )
        assert resp.status_code == 403


def test_store_failure_is_a_fetch_failure(client, seeded, monkeypatch):
    store = client.app.state.category_store

    def broken(*args, **kwargs):
        raise CategoryStoreError("offline")

    monkeypatch.setattr(store, "list_children", broken)
    resp = client.post(
        "/api/menu/subcategories", data={"parent_id": "77", "security": _nonce(client)}
    )

    assert resp.status_code == 503
    assert resp.json() == {"success": False, "data": {"message": "Could not load categories"}}


def test_taxonomy_edit_is_visible_on_next_fetch(client, seeded):
    books = seeded["books"]
    store = client.app.state.category_store
    payload = {"parent_id": str(books.id), "security": _nonce(client)}
    client.post("/api/menu/subcategories", data=payload)

    store.create("Atlases", parent_id=books.id, post_count=1)

    resp = client.post("/api/menu/subcategories", data=payload)
    assert [item["name"] for item in resp.json()["data"].values()] == [
        "ATLASES",
        "ESSAYS & LETTERS",
        "POETRY",
    ]


def test_admin_token_requires_authentication(client):
    assert client.get("/api/admin/cache/token").status_code == 401
    resp = client.get("/api/admin/cache/token", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_admin_clear_flow(client, seeded, admin_headers):
    cache = client.app.state.category_cache
    cache.get()
    cache.get(seeded["books"].id)

    token = client.get("/api/admin/cache/token", headers=admin_headers).json()["nonce"]
    resp = client.post(
        "/api/admin/cache/clear", data={"security": token}, headers=admin_headers
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "data": {"message": "Cache cleared"}}
    assert cache._storage.keys() == []


def test_admin_clear_rejects_public_token(client, admin_headers, monkeypatch):
    cache = client.app.state.category_cache
    monkeypatch.setattr(cache, "clear_all", lambda: pytest.fail("must not clear"))

    resp = client.post(
        "/api/admin/cache/clear", data={"security": _nonce(client)}, headers=admin_headers
    )

    assert resp.status_code == 403


def test_admin_clear_reports_storage_failure(client, admin_headers, monkeypatch):
    storage = client.app.state.category_cache._storage

    def broken(prefix):
        raise CacheStorageError("down")

    monkeypatch.setattr(storage, "delete_prefix", broken)
    token = client.get("/api/admin/cache/token", headers=admin_headers).json()["nonce"]
    resp = client.post(
        "/api/admin/cache/clear", data={"security": token}, headers=admin_headers
    )

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "data": {"message": "Error clearing cache"}}


def test_request_id_is_echoed(client):
    resp = client.get("/readyz", headers={"X-Request-Id": "abc123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-Id"] == "abc123"


def test_metrics_endpoint_requires_role(client, admin_headers):
    assert client.get("/metrics").status_code == 401
    resp = client.get("/metrics", headers=admin_headers)
    assert resp.status_code == 200
    assert "catmenu_category_cache_lookups" in resp.text


def test_admin_clear_rejects_non_ascii_token(client, admin_headers, monkeypatch):
    cache = client.app.state.category_cache
    monkeypatch.setattr(cache, "clear_all", lambda: pytest.fail("must not clear"))

    resp = client.post(
        "/api/admin/cache/clear", data={"security": "jeton-é"}, headers=admin_headers
    )

    assert resp.status_code == 403
