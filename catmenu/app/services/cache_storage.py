"""Key-value storages with per-key expiry used by the category cache.

Every backend offers atomic ``get``/``set``/``delete`` for a single key, a bulk
``delete_prefix`` and ``purge_expired``. Values are JSON-serialisable objects.
Expiry is passive: an expired entry reads as missing. Backend failures are
raised as :class:`CacheStorageError` so callers can degrade uniformly.
"""

from __future__ import annotations

import json
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import redis
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as postgres_upsert
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.sql import Insert

from ..core.settings import Settings
from ..models import CacheEntry


class CacheStorageError(RuntimeError):
    """The cache backend is unavailable or rejected an operation."""


def _decode(key: str, raw: str | bytes) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise CacheStorageError(f"corrupt value stored under {key}") from exc


class CacheStorage(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...

    def purge_expired(self) -> int: ...


@dataclass
class _MemoryEntry:
    value: str
    expires_at: float


class MemoryCacheStorage:
    """Process-local TTL storage."""

    def __init__(self) -> None:
        self._entries: dict[str, _MemoryEntry] = {}
        self._lock = threading.Lock()

    def _now(self) -> float:
        return time.time()

    def get(self, key: str) -> Any | None:
        now = self._now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                return None
            raw = entry.value
        return _decode(key, raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        # Stored serialised so readers never share mutable state.
        raw = json.dumps(value)
        expires_at = self._now() + ttl_seconds
        with self._lock:
            self._entries[key] = _MemoryEntry(value=raw, expires_at=expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._now()
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def keys(self) -> list[str]:
        """Live and expired keys, sorted. For inspection and tests."""
        with self._lock:
            return sorted(self._entries)


def _detect_dialect(session: Session) -> str:
    """Return the current session dialect name in lowercase."""

    bind = session.get_bind()
    dialect = getattr(bind, "dialect", None)
    if dialect is None or not getattr(dialect, "name", None):
        raise CacheStorageError("session bind has no dialect information")
    return str(dialect.name).lower()


def _upsert(session: Session, rows: Sequence[dict]) -> Insert:
    """Build an insert-or-replace statement suited for the session dialect."""

    dialect_name = _detect_dialect(session)
    if dialect_name == "sqlite":
        stmt = sqlite_upsert(CacheEntry).values(list(rows))
    elif dialect_name in {"postgresql", "postgres"}:
        stmt = postgres_upsert(CacheEntry).values(list(rows))
    else:
        raise CacheStorageError(
            f"Unsupported database dialect '{dialect_name}'. "
            "Upsert statements are implemented only for SQLite and PostgreSQL."
        )
    return stmt.on_conflict_do_update(
        index_elements=[CacheEntry.key],
        set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
    )


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlCacheStorage:
    """Storage in the ``menu_cache`` table; expiry is a Unix timestamp column."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _now(self) -> int:
        return int(time.time())

    def get(self, key: str) -> Any | None:
        stmt = select(CacheEntry.value).where(
            CacheEntry.key == key, CacheEntry.expires_at > self._now()
        )
        session = self._session_factory()
        try:
            raw = session.scalar(stmt)
        except SQLAlchemyError as exc:
            raise CacheStorageError(f"read failed for {key}") from exc
        finally:
            session.close()
        if raw is None:
            return None
        return _decode(key, raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        row = {
            "key": key,
            "value": json.dumps(value),
            "expires_at": self._now() + ttl_seconds,
        }
        session = self._session_factory()
        try:
            session.execute(_upsert(session, [row]))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise CacheStorageError(f"write failed for {key}") from exc
        finally:
            session.close()

    def _execute_delete(self, stmt, what: str) -> int:
        session = self._session_factory()
        try:
            result = session.execute(stmt)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise CacheStorageError(f"delete failed for {what}") from exc
        finally:
            session.close()
        return int(result.rowcount or 0)

    def delete(self, key: str) -> None:
        self._execute_delete(delete(CacheEntry).where(CacheEntry.key == key), key)

    def delete_prefix(self, prefix: str) -> int:
        stmt = delete(CacheEntry).where(
            CacheEntry.key.like(_escape_like(prefix) + "%", escape="\\")
        )
        return self._execute_delete(stmt, f"{prefix}*")

    def purge_expired(self) -> int:
        stmt = delete(CacheEntry).where(CacheEntry.expires_at <= self._now())
        return self._execute_delete(stmt, "expired entries")


_GLOB_SPECIALS = re.compile(r"([*?\[\]\\])")


def _escape_glob(text: str) -> str:
    return _GLOB_SPECIALS.sub(r"\\\1", text)


class RedisCacheStorage:
    """Redis storage; keys are namespaced and expire server-side."""

    def __init__(self, client: redis.Redis, namespace: str = "mlcm:") -> None:
        self._client = client
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(self._key(key))
        except redis.RedisError as exc:
            raise CacheStorageError(f"read failed for {key}") from exc
        if raw is None:
            return None
        return _decode(key, raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self._client.set(self._key(key), json.dumps(value), ex=ttl_seconds)
        except redis.RedisError as exc:
            raise CacheStorageError(f"write failed for {key}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as exc:
            raise CacheStorageError(f"delete failed for {key}") from exc

    def delete_prefix(self, prefix: str) -> int:
        pattern = _escape_glob(self._key(prefix)) + "*"
        deleted = 0
        try:
            batch: list[Any] = []
            for name in self._client.scan_iter(match=pattern, count=500):
                batch.append(name)
                if len(batch) >= 500:
                    deleted += int(self._client.delete(*batch))
                    batch = []
            if batch:
                deleted += int(self._client.delete(*batch))
        except redis.RedisError as exc:
            raise CacheStorageError(f"delete failed for {prefix}*") from exc
        return deleted

    def purge_expired(self) -> int:
        # Redis evicts expired keys itself.
        return 0


def build_storage(settings: Settings, session_factory: sessionmaker[Session]) -> CacheStorage:
    """Instantiate the backend selected by ``CACHE_BACKEND``."""

    backend = settings.CACHE_BACKEND
    if backend == "sql":
        return SqlCacheStorage(session_factory)
    if backend == "redis":
        client = redis.Redis.from_url(settings.REDIS_URL, socket_timeout=2.0)
        return RedisCacheStorage(client, namespace=settings.CACHE_NAMESPACE)
    return MemoryCacheStorage()


__all__ = [
    "CacheStorage",
    "CacheStorageError",
    "MemoryCacheStorage",
    "RedisCacheStorage",
    "SqlCacheStorage",
    "build_storage",
]
