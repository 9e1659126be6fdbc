from catmenu.app.services.cache_storage import MemoryCacheStorage, SqlCacheStorage
from catmenu.app.services.category_cache import CategoryCache
from catmenu.app.services.invalidation import CacheInvalidator, bind_invalidation
from catmenu.app.services.taxonomy import TaxonomyEvent


def _cache(store, storage=None, **kwargs):
    storage = storage or MemoryCacheStorage()
    cache = CategoryCache(store, storage, **kwargs)
    return cache, storage, bind_invalidation(store, cache)


def test_editing_a_child_rebuilds_the_parent_entry(sql_store):
    parent = sql_store.create("Music", post_count=1)
    child = sql_store.create("jazz", parent_id=parent.id, post_count=1)
    cache, storage, _ = _cache(sql_store)

    assert [c.name for c in cache.get(parent.id)] == ["JAZZ"]
    sql_store.update(child.id, name="Blues")

    assert f"subcats:{parent.id}" not in storage.keys()
    assert [c.name for c in cache.get(parent.id)] == ["BLUES"]


def test_creating_a_top_level_category_refreshes_root(sql_store):
    sql_store.create("Alpha", post_count=1)
    cache, storage, _ = _cache(sql_store)
    cache.get()

    sql_store.create("Beta", post_count=1)

    assert "root" not in storage.keys()
    assert [c.name for c in cache.get()] == ["ALPHA", "BETA"]


def test_moving_a_category_evicts_old_and_new_parent(sql_store):
    a = sql_store.create("A", post_count=1)
    b = sql_store.create("B", post_count=1)
    moving = sql_store.create("Moving", parent_id=a.id, post_count=1)
    cache, storage, _ = _cache(sql_store)
    cache.get()
    cache.get(a.id)
    cache.get(b.id)

    sql_store.update(moving.id, parent_id=b.id)

    assert storage.keys() == ["root"]
    assert cache.get(a.id) == ()
    assert [c.id for c in cache.get(b.id)] == [moving.id]


def test_deleting_a_category_evicts_its_parent(sql_store):
    parent = sql_store.create("Parent", post_count=1)
    doomed = sql_store.create("Doomed", parent_id=parent.id, post_count=1)
    cache, storage, _ = _cache(sql_store, SqlCacheStorage(sql_store._session_factory))
    cache.get(parent.id)

    sql_store.delete(doomed.id)

    assert cache.get(parent.id) == ()


def test_custom_root_entry_survives_top_level_edits(sql_store):
    catalog = sql_store.create("Catalog", post_count=1)
    sql_store.create("Inside", parent_id=catalog.id, post_count=1)
    other = sql_store.create("Other", post_count=1)
    cache, storage, _ = _cache(sql_store, custom_root_id=catalog.id)
    cache.get()

    sql_store.update(other.id, name="Other renamed")

    assert "root" in storage.keys()


def test_cancelled_binding_stops_invalidation(sql_store):
    top = sql_store.create("Top", post_count=1)
    cache, storage, subscription = _cache(sql_store)
    cache.get()
    subscription.cancel()

    sql_store.update(top.id, name="Changed")

    assert storage.keys() == ["root"]


def test_event_from_previous_top_level_position_evicts_root(fake_store):
    fake_store.add(1, "Parent")
    storage = MemoryCacheStorage()
    storage.set("root", [], 60)
    storage.set("subcats:1", [], 60)
    cache = CategoryCache(fake_store, storage)

    CacheInvalidator(cache)(TaxonomyEvent("edited", 5, 1, 0))

    assert storage.keys() == []
