from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CORE_DIR = Path(__file__).resolve().parent

MAX_LEVELS = 5

TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}


def mask_secret(value: str | None) -> str:
    """Mask a secret leaving only the last four characters visible."""

    if not value:
        return ""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


def _coerce_bool(value: Any, default: bool) -> bool:
    """Coerce various inputs to bool, falling back to default when unknown."""

    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return default
        sl = s.lower()
        if sl in TRUE_VALUES:
            return True
        if sl in FALSE_VALUES:
            return False
        return default

    try:
        return bool(int(value))
    except (TypeError, ValueError):
        return default


def _parse_int(value: Any, env_name: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, str):
        stripped = value.strip()
        if stripped == "":
            return default
        value = stripped
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer '{value}' for {env_name}") from exc


def parse_id_list(value: Any) -> list[int]:
    """Parse ``"3, 5,x,,7"`` into ``[3, 5, 7]``.

    Items are integer-coerced; anything that is not a positive integer is
    dropped, duplicates keep their first position.
    """

    if value is None:
        return []
    if isinstance(value, str):
        parts: list[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = list(value)
    else:
        parts = [value]
    ids: list[int] = []
    for part in parts:
        try:
            number = int(str(part).strip())
        except (TypeError, ValueError):
            continue
        if number > 0 and number not in ids:
            ids.append(number)
    return ids


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    app_name: str = "Category Menu API"
    environment: Literal["local", "staging", "production"] = "local"
    cors_origins: List[str] | str = ["http://localhost"]

    DATABASE_URL: str | None = None
    RUN_MIGRATIONS: bool = False

    CACHE_BACKEND: Literal["memory", "sql", "redis"] = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_NAMESPACE: str = "mlcm:"
    CACHE_PURGE_ENABLED: bool = True

    SITE_URL: str = "http://localhost"
    CATEGORY_BASE: str = "category"

    MLCM_EXCLUDED_CATS: List[int] | str = Field(default_factory=list)
    MLCM_CUSTOM_ROOT: int | None = None
    MLCM_INITIAL_LEVELS: int = 3
    MLCM_MENU_LAYOUT: Literal["vertical", "horizontal"] = "vertical"
    MLCM_LEVEL_LABELS: List[str] | str = Field(default_factory=list)
    MLCM_SHOW_BUTTON: bool = False
    MLCM_MENU_WIDTH: int = 250
    MLCM_HIDE_EMPTY: bool = True

    SECRET_KEY: str = "change-me"
    NONCE_LIFETIME_SECONDS: int = 24 * 60 * 60
    ADMIN_API_TOKEN: str | None = None
    CASBIN_MODEL_PATH: str = str(CORE_DIR / "rbac_model.conf")
    CASBIN_POLICY_PATH: str = str(CORE_DIR / "rbac_policy.csv")

    SENTRY_DSN: str | None = None
    OTEL_ENDPOINT: str | None = None
    PROMETHEUS_ENDPOINT: str = "/metrics"

    log_level: str | int | None = Field(
        default=None, description="Python logging level"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator(
        "RUN_MIGRATIONS",
        "CACHE_PURGE_ENABLED",
        "MLCM_SHOW_BUTTON",
        "MLCM_HIDE_EMPTY",
        mode="before",
    )
    @classmethod
    def _v_bool(cls, v: Any, info) -> bool:  # type: ignore[override]
        default = cls.model_fields[info.field_name].default
        return _coerce_bool(v, default)

    @field_validator(
        "MLCM_INITIAL_LEVELS",
        "MLCM_MENU_WIDTH",
        "NONCE_LIFETIME_SECONDS",
        mode="before",
    )
    @classmethod
    def _validate_int(cls, v: Any, info) -> int:  # type: ignore[override]
        default = cls.model_fields[info.field_name].default
        return _parse_int(v, info.field_name.upper(), default)

    @field_validator("MLCM_INITIAL_LEVELS")
    @classmethod
    def _clamp_levels(cls, v: int) -> int:
        return min(max(v, 1), MAX_LEVELS)

    @field_validator("NONCE_LIFETIME_SECONDS")
    @classmethod
    def _positive_lifetime(cls, v: int) -> int:
        if v < 2:
            raise ValueError("NONCE_LIFETIME_SECONDS must be >= 2")
        return v

    @field_validator("MLCM_EXCLUDED_CATS", mode="before")
    @classmethod
    def _split_excluded(cls, v: Any) -> list[int]:
        return parse_id_list(v)

    @field_validator("MLCM_CUSTOM_ROOT", mode="before")
    @classmethod
    def _norm_custom_root(cls, v: Any) -> int | None:
        if v is None:
            return None
        s = str(v).strip()
        if s == "":
            return None
        try:
            number = int(s)
        except ValueError:
            return None
        return number if number > 0 else None

    @field_validator("MLCM_MENU_LAYOUT", mode="before")
    @classmethod
    def _norm_layout(cls, v: Any) -> str:
        if not v:
            return "vertical"
        s = str(v).strip().lower()
        return "horizontal" if s == "horizontal" else "vertical"

    @field_validator("MLCM_LEVEL_LABELS", mode="before")
    @classmethod
    def _split_labels(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [s.strip() for s in v.split(",")]
        if isinstance(v, (list, tuple)):
            return [str(s).strip() for s in v]
        return [str(v).strip()]

    @field_validator("CACHE_BACKEND", mode="before")
    @classmethod
    def _norm_backend(cls, v: Any) -> str:
        if not v:
            return "memory"
        return str(v).strip().lower()

    @field_validator("DATABASE_URL", "ADMIN_API_TOKEN", "SENTRY_DSN", "OTEL_ENDPOINT", mode="before")
    @classmethod
    def _empty_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            s = v.strip()
            if s == "":
                return None
            return s
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> Any:
        if v is None:
            return None
        s = str(v).strip()
        if s == "":
            return None
        if s.isdigit():
            return int(s)
        return s.upper()

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or "sqlite:///./catmenu.db"

    @property
    def excluded_ids(self) -> frozenset[int]:
        return frozenset(self.MLCM_EXCLUDED_CATS)

    @property
    def level_labels(self) -> list[str]:
        """Labels for every level, defaulting to ``Level N``."""

        given = list(self.MLCM_LEVEL_LABELS)
        labels = []
        for i in range(1, MAX_LEVELS + 1):
            label = given[i - 1] if i <= len(given) else ""
            labels.append(label or f"Level {i}")
        return labels


@lru_cache(1)
def get_settings() -> Settings:
    return Settings()


__all__ = [
    "MAX_LEVELS",
    "Settings",
    "get_settings",
    "mask_secret",
    "parse_id_list",
]
