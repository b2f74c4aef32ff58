"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables and .env files (local dev)
  - Secret references for the relay API key (aws-secret://, gcp-secret://),
    kept as written here and resolved by the relay command
"""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from identity_console.exceptions import ConfigError

DEFAULT_BACKEND_PORT = 3001
DEFAULT_CACHE_PATH = os.path.join("~", ".identity-console", "cache.db")


@dataclass(frozen=True)
class BackendConfig:
    candidates: list[str] = field(
        default_factory=lambda: [f"http://localhost:{DEFAULT_BACKEND_PORT}"]
    )
    fallback: Optional[str] = None  # None = first candidate
    discovery_timeout: float = 5.0
    request_timeout: float = 30.0
    page_size: int = 50
    users_path: str = "/spectro/users"
    roles_path: str = "/spectro/roles"
    teams_path: str = "/spectro/teams"


@dataclass(frozen=True)
class CacheConfig:
    path: str = DEFAULT_CACHE_PATH


@dataclass(frozen=True)
class SchedulerConfig:
    sync_interval_min: int = 60
    stale_after_min: int = 60
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class RelayConfig:
    api_base_url: str = "https://api.spectrocloud.com/v1"
    api_key: str = ""
    host: str = "0.0.0.0"
    port: int = DEFAULT_BACKEND_PORT


@dataclass(frozen=True)
class ConsoleConfig:
    backend: BackendConfig = field(default_factory=BackendConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def default_candidates(port: int = DEFAULT_BACKEND_PORT) -> list[str]:
    """Relay candidates in priority order: localhost first, then this host's name."""
    candidates = [f"http://localhost:{port}"]
    hostname = socket.gethostname()
    if hostname:
        candidates.append(f"http://{hostname}:{port}")
    return candidates


def load_config() -> ConsoleConfig:
    """Load configuration from environment variables (and a .env file if present)."""
    load_dotenv()

    raw_candidates = os.environ.get("CONSOLE_BACKEND_CANDIDATES", "")
    candidates = [s.strip().rstrip("/") for s in raw_candidates.split(",") if s.strip()]
    if not candidates:
        candidates = default_candidates()

    backend = BackendConfig(
        candidates=candidates,
        fallback=os.environ.get("CONSOLE_BACKEND_FALLBACK") or None,
        discovery_timeout=_env_float("CONSOLE_DISCOVERY_TIMEOUT", 5.0),
        request_timeout=_env_float("CONSOLE_REQUEST_TIMEOUT", 30.0),
        page_size=_env_int("CONSOLE_PAGE_SIZE", 50),
    )

    cache = CacheConfig(
        path=os.environ.get("CONSOLE_CACHE_PATH", DEFAULT_CACHE_PATH),
    )

    scheduler = SchedulerConfig(
        sync_interval_min=_env_int("CONSOLE_SYNC_INTERVAL_MIN", 60),
        stale_after_min=_env_int("CONSOLE_STALE_AFTER_MIN", 60),
    )

    relay = RelayConfig(
        api_base_url=os.environ.get(
            "SPECTRO_API_BASE_URL", "https://api.spectrocloud.com/v1"
        ).rstrip("/"),
        api_key=os.environ.get("SPECTRO_API_KEY", ""),
        host=os.environ.get("RELAY_HOST", "0.0.0.0"),
        port=_env_int("RELAY_PORT", DEFAULT_BACKEND_PORT),
    )

    return ConsoleConfig(
        backend=backend,
        cache=cache,
        scheduler=scheduler,
        relay=relay,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
