# =============================================================================
# pwa_core/offline/config.py
# Worker Configuration (cache version, origin classes, store, sync policy)
# =============================================================================
"""
WorkerConfig - immutable configuration injected into the worker at startup.

Values are resolved in this order (later wins):
1. Dataclass defaults
2. The [worker] table of a TOML file (config/worker.toml by default)
3. PWA_* environment variables
4. Explicit keyword overrides passed to load_config()
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse
import logging

import toml

from pwa_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "worker.toml"

# Environment variable -> config field
ENV_OVERRIDES = {
    "PWA_CACHE_VERSION": "cache_version",
    "PWA_SCOPE_URL": "scope_url",
    "PWA_BACKEND_HOST": "backend_host",
    "PWA_SYNC_POLICY": "sync_policy",
    "PWA_DATA_DIR": "data_dir",
}


class SyncPolicy(Enum):
    """How many pending records a single reconciliation pass submits."""
    DRAIN_ALL = "drain_all"       # Every pending record, sequentially
    OLDEST_ONLY = "oldest_only"   # First pending record only; triggers act as the retry loop


@dataclass(frozen=True)
class WorkerConfig:
    """Configuration for one deployed worker version."""

    # Cache
    cache_version: str = "formulario-cache-v0051"
    scope_url: str = "http://localhost:8000/"
    core_assets: Tuple[str, ...] = (
        "./",               # Root path (resolves to index.html)
        "./index.html",     # Application entry document
        "./manifest.json",  # App config document
        "./sw.js",          # Worker self-reference
    )
    offline_document: str = "./index.html"

    # Origin classes
    backend_host: str = "vps.pesoexato.com"
    backend_scheme: str = "https"
    cdn_hosts: Tuple[str, ...] = (
        "cdnjs",
        "cdn.jsdelivr.net",
        "cdn.tailwindcss.com",
    )

    # Sync
    submit_path: str = "/servico_set"
    sync_tag: str = "background-sync-formularios"
    sync_policy: SyncPolicy = SyncPolicy.DRAIN_ALL

    # Local store
    data_dir: str = "local_data"
    db_name: str = "FormulariosDB"
    db_version: int = 4
    store_name: str = "formularios"

    request_timeout: float = 30

    def __post_init__(self):
        if isinstance(self.sync_policy, str):
            try:
                object.__setattr__(self, "sync_policy", SyncPolicy(self.sync_policy))
            except ValueError:
                raise ConfigurationError(
                    f"Unknown sync policy: {self.sync_policy}",
                    config_key="sync_policy",
                    expected_type="|".join(p.value for p in SyncPolicy),
                )
        for name in ("core_assets", "cdn_hosts"):
            value = getattr(self, name)
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise ConfigurationError(
                    f"{name} must be a list of strings",
                    config_key=name,
                    expected_type="list[str]",
                )
            object.__setattr__(self, name, tuple(value))
        self._validate()

    def _validate(self) -> None:
        if not self.cache_version:
            raise ConfigurationError("cache_version must not be empty", config_key="cache_version")
        if not self.backend_host:
            raise ConfigurationError("backend_host must not be empty", config_key="backend_host")
        parsed = urlparse(self.scope_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigurationError(
                f"scope_url must be an absolute http(s) URL, got {self.scope_url!r}",
                config_key="scope_url",
            )
        if self.db_version < 1:
            raise ConfigurationError("db_version must be a positive integer", config_key="db_version")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive", config_key="request_timeout")

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def origin_host(self) -> str:
        """Hostname the worker itself is served from."""
        return urlparse(self.scope_url).hostname

    @property
    def submit_url(self) -> str:
        return f"{self.backend_scheme}://{self.backend_host}{self.submit_path}"

    @property
    def core_asset_urls(self) -> Tuple[str, ...]:
        return tuple(self.resolve(url) for url in self.core_assets)

    @property
    def offline_document_url(self) -> str:
        return self.resolve(self.offline_document)

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / f"{self.db_name}.sqlite3"

    @property
    def cache_dir(self) -> Path:
        return Path(self.data_dir) / "cache_storage"

    def resolve(self, url: str) -> str:
        """Resolve a scope-relative URL to an absolute one."""
        return urljoin(self.scope_url, url)

    def with_overrides(self, **overrides: Any) -> WorkerConfig:
        """Return a copy with some fields replaced (e.g. a bumped cache_version)."""
        return replace(self, **overrides)


def _coerce(name: str, value: Any) -> Any:
    """Convert raw TOML/env values to the field's type."""
    if name in ("db_version",):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be an integer", config_key=name, expected_type="int")
    if name == "request_timeout":
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be a number", config_key=name, expected_type="float")
    return value


def load_config(
    path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> WorkerConfig:
    """
    Build a WorkerConfig from file, environment and overrides.

    Args:
        path: TOML file with a [worker] table. When None, config/worker.toml
            is used if it exists.
        **overrides: Field values that take precedence over everything else

    Returns:
        Validated WorkerConfig
    """
    known = {f.name for f in fields(WorkerConfig)}
    values: Dict[str, Any] = {}

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if config_path.exists():
        try:
            data = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigurationError(
                f"Cannot read config file {config_path}: {e}",
                details={"path": str(config_path)},
            )
        section = data.get("worker", {})
        unknown = set(section) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown config keys: {', '.join(sorted(unknown))}",
                details={"path": str(config_path)},
            )
        values.update(section)
        logger.info(f"Loaded worker config from {config_path}")
    elif path is not None:
        raise ConfigurationError(f"Config file not found: {config_path}", details={"path": str(config_path)})

    for env_name, field_name in ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[field_name] = env_value

    for key in overrides:
        if key not in known:
            raise ConfigurationError(f"Unknown config key: {key}", config_key=key)
    values.update(overrides)

    values = {k: _coerce(k, v) for k, v in values.items()}
    return WorkerConfig(**values)
