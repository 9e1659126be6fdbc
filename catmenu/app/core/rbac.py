"""Capability checks backed by a casbin ACL."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable

import casbin

from .settings import Settings, get_settings


@lru_cache(4)
def get_enforcer(model_path: str, policy_path: str) -> casbin.Enforcer:
    return casbin.Enforcer(model_path, policy_path)


def can(
    roles: Iterable[str],
    resource: str,
    action: str,
    *,
    settings: Settings | None = None,
) -> bool:
    """Return ``True`` when any of ``roles`` may perform ``action`` on ``resource``."""

    settings = settings or get_settings()
    enforcer = get_enforcer(settings.CASBIN_MODEL_PATH, settings.CASBIN_POLICY_PATH)
    return any(enforcer.enforce(role, resource, action) for role in roles)


__all__ = ["can", "get_enforcer"]
