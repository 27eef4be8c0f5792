"""TOML config: default.toml plus an optional profile overlay."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

import structlog

# Searched in order when no config dir is given: ./config, then the repo's config/
_CWD_CONFIG = Path.cwd() / "config"
_REPO_CONFIG = Path(__file__).resolve().parents[3] / "config"

SECTIONS = ("storage", "market", "admin", "notify", "api", "logging")


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as fh:
        return tomllib.load(fh)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into a copy of base; nested tables merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _resolve_config_dir(config_dir: Path | None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    return _CWD_CONFIG if _CWD_CONFIG.is_dir() else _REPO_CONFIG


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Raw merged config. Empty when the directory has no default.toml."""
    root = _resolve_config_dir(config_dir)
    default = root / "default.toml"
    if not default.exists():
        return {}
    raw = _read_toml(default)
    overlay = root / f"{profile}.toml" if profile else None
    if overlay is not None and overlay.exists():
        raw = _deep_merge(raw, _read_toml(overlay))
    return raw


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    return Settings.from_dict(load_config(profile, config_dir))


class Settings:
    """Typed view over the merged config. Every option has a default."""

    def __init__(self, **sections: dict[str, Any] | None) -> None:
        unknown = set(sections) - set(SECTIONS)
        if unknown:
            raise TypeError(f"unknown config sections: {sorted(unknown)}")
        self._sections = {name: dict(sections.get(name) or {}) for name in SECTIONS}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(**{name: raw.get(name) for name in SECTIONS})

    def _opt(self, section: str, key: str, default: Any) -> Any:
        return self._sections[section].get(key, default)

    # [storage]
    @property
    def db_path(self) -> str:
        return str(self._opt("storage", "db_path", "data/poolmarket.duckdb"))

    @property
    def lock_timeout_sec(self) -> float:
        return float(self._opt("storage", "lock_timeout_sec", 10.0))

    # [market]
    @property
    def starting_balance(self) -> int:
        return int(self._opt("market", "starting_balance", 1000))

    # [admin]
    @property
    def admin_username(self) -> str:
        return self._opt("admin", "username", "admin")

    # [notify]
    @property
    def notify_queue_size(self) -> int:
        return int(self._opt("notify", "queue_size", 64))

    @property
    def keepalive_sec(self) -> float:
        return float(self._opt("notify", "keepalive_sec", 15.0))

    # [api]
    @property
    def api_host(self) -> str:
        return self._opt("api", "host", "127.0.0.1")

    @property
    def api_port(self) -> int:
        return int(self._opt("api", "port", 8080))

    @property
    def cors_origins(self) -> list[str]:
        return list(self._opt("api", "cors_origins", None) or ["*"])

    # [logging]
    @property
    def logging_level(self) -> str:
        return str(self._opt("logging", "level", "INFO")).upper()

    @property
    def logging_format(self) -> str:
        return self._opt("logging", "format", "console")

    @property
    def logging_level_num(self) -> int:
        return logging.getLevelNamesMapping().get(self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Set up structlog once at process entry: console lines or JSON."""
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        renderer = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderer = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=shared + renderer,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
