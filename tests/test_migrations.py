import sqlite3

from catmenu.app.db.migrations import run_migrations


def _tables(db_path):
    con = sqlite3.connect(db_path)
    try:
        rows = con.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    finally:
        con.close()
    return {row[0] for row in rows}


def _columns(db_path, table):
    con = sqlite3.connect(db_path)
    try:
        rows = con.execute(f"PRAGMA table_info({table})").fetchall()
    finally:
        con.close()
    return [row[1] for row in rows]


def test_run_migrations_creates_schema(tmp_path):
    db_path = tmp_path / "migr.db"
    run_migrations(f"sqlite:///{db_path}")

    assert db_path.exists()
    assert {"categories", "menu_cache", "alembic_version"} <= _tables(db_path)
    assert _columns(db_path, "categories") == ["id", "name", "slug", "parent_id", "post_count"]
    assert _columns(db_path, "menu_cache") == ["key", "value", "expires_at"]


def test_run_migrations_is_idempotent(tmp_path):
    db_path = tmp_path / "twice.db"
    run_migrations(f"sqlite:///{db_path}")
    run_migrations(f"sqlite:///{db_path}")

    assert "menu_cache" in _tables(db_path)
