from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    return _as_bool(raw)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass(frozen=True)
class ScanLimits:
    """Paging bounds for listing and full-scan mode."""

    list_default_limit: int = 100
    list_max_limit: int = 500
    list_overfetch_factor: int = 3
    list_max_pages: int = 10
    stats_default_page_size: int = 500
    stats_max_page_size: int = 2000
    stats_max_pages: int = 1000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ScanLimits":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            list_default_limit=max(1, _env_int(env, "APP_ES_AIP_LIST_LIMIT", defaults.list_default_limit)),
            list_max_limit=max(1, _env_int(env, "APP_ES_AIP_LIST_MAX_LIMIT", defaults.list_max_limit)),
            list_overfetch_factor=max(1, _env_int(env, "APP_ES_AIP_LIST_OVERFETCH", defaults.list_overfetch_factor)),
            list_max_pages=max(1, _env_int(env, "APP_ES_AIP_LIST_MAX_PAGES", defaults.list_max_pages)),
            stats_default_page_size=max(1, _env_int(env, "APP_ES_AIP_PAGE_SIZE", defaults.stats_default_page_size)),
            stats_max_page_size=max(1, _env_int(env, "APP_ES_AIP_MAX_PAGE_SIZE", defaults.stats_max_page_size)),
            stats_max_pages=max(1, _env_int(env, "APP_ES_AIP_MAX_PAGES", defaults.stats_max_pages)),
        )


@dataclass(frozen=True)
class SearchIndexConfig:
    enabled: bool = False
    endpoint: str = "http://127.0.0.1:62002"
    timeout_s: float = 5.0
    lookup_limit: int = 5
    aip_index: str = "aipfiles"
    scan_deadline_s: float = 120.0
    limits: ScanLimits = field(default_factory=ScanLimits)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SearchIndexConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            enabled=_env_bool(env, "APP_ES_ENABLED", defaults.enabled),
            endpoint=env.get("APP_ES_ENDPOINT", defaults.endpoint).strip().rstrip("/"),
            timeout_s=_env_float(env, "APP_ES_TIMEOUT_SEC", defaults.timeout_s),
            lookup_limit=_env_int(env, "APP_ES_LOOKUP_LIMIT", defaults.lookup_limit),
            aip_index=env.get("APP_ES_AIP_INDEX", "").strip() or defaults.aip_index,
            scan_deadline_s=max(0.0, _env_float(env, "APP_ES_SCAN_DEADLINE_SEC", defaults.scan_deadline_s)),
            limits=ScanLimits.from_env(env),
        )


def cors_allow_origins(environ: Mapping[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    return _split_csv(env.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173"))
