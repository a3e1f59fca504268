"""Client configuration loaded from YAML with environment overrides."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from assessment_progress.retry import RetryPolicy

ENV_PREFIX = "ASSESSMENT_PROGRESS_"
TOKEN_ENV = f"{ENV_PREFIX}TOKEN"


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = "http://localhost:3001/api"
    timeout_seconds: float = 10.0
    poll_interval_seconds: float = 5.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    terminal_grace_seconds: Optional[float] = None
    heartbeat_interval_seconds: float = 30.0

    def __post_init__(self) -> None:
        base_url = self.base_url.strip()
        if not base_url:
            raise ValueError("base_url cannot be empty")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.heartbeat_interval_seconds <= 0:
            raise ValueError("heartbeat_interval_seconds must be positive")
        if self.terminal_grace_seconds is not None and self.terminal_grace_seconds < 0:
            raise ValueError("terminal_grace_seconds cannot be negative")
        object.__setattr__(self, "base_url", base_url.rstrip("/"))


def _as_float(key: str, raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be numeric, got {raw!r}") from exc


def _as_int(key: str, raw: Any) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


def _optional_float(key: str, raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    return _as_float(key, raw)


def _retry_from_mapping(data: Mapping[str, Any], base: RetryPolicy) -> RetryPolicy:
    return RetryPolicy(
        max_retries=_as_int("retry.max_retries", data.get("max_retries", base.max_retries)),
        initial_delay_seconds=_as_float(
            "retry.initial_delay_seconds", data.get("initial_delay_seconds", base.initial_delay_seconds)
        ),
        max_delay_seconds=_as_float("retry.max_delay_seconds", data.get("max_delay_seconds", base.max_delay_seconds)),
        backoff_factor=_as_float("retry.backoff_factor", data.get("backoff_factor", base.backoff_factor)),
    )


def config_from_mapping(data: Mapping[str, Any]) -> ClientConfig:
    defaults = ClientConfig()
    retry_block = data.get("retry") or {}
    if not isinstance(retry_block, Mapping):
        raise ValueError("retry must be a mapping")
    return ClientConfig(
        base_url=str(data.get("base_url", defaults.base_url)),
        timeout_seconds=_as_float("timeout_seconds", data.get("timeout_seconds", defaults.timeout_seconds)),
        poll_interval_seconds=_as_float(
            "poll_interval_seconds", data.get("poll_interval_seconds", defaults.poll_interval_seconds)
        ),
        retry=_retry_from_mapping(retry_block, defaults.retry),
        terminal_grace_seconds=_optional_float("terminal_grace_seconds", data.get("terminal_grace_seconds")),
        heartbeat_interval_seconds=_as_float(
            "heartbeat_interval_seconds", data.get("heartbeat_interval_seconds", defaults.heartbeat_interval_seconds)
        ),
    )


def load_config_file(path: Path) -> ClientConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config not found at {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping")
    return config_from_mapping(data)


_ENV_OVERRIDES: Dict[str, Callable[[ClientConfig, str], ClientConfig]] = {
    "BASE_URL": lambda cfg, raw: replace(cfg, base_url=raw),
    "TIMEOUT": lambda cfg, raw: replace(cfg, timeout_seconds=_as_float("TIMEOUT", raw)),
    "POLL_INTERVAL": lambda cfg, raw: replace(cfg, poll_interval_seconds=_as_float("POLL_INTERVAL", raw)),
    "MAX_RETRIES": lambda cfg, raw: replace(cfg, retry=replace(cfg.retry, max_retries=_as_int("MAX_RETRIES", raw))),
    "GRACE_SECONDS": lambda cfg, raw: replace(cfg, terminal_grace_seconds=_optional_float("GRACE_SECONDS", raw)),
    "HEARTBEAT_INTERVAL": lambda cfg, raw: replace(
        cfg, heartbeat_interval_seconds=_as_float("HEARTBEAT_INTERVAL", raw)
    ),
}


def apply_env_overrides(config: ClientConfig, env: Mapping[str, str]) -> ClientConfig:
    result = config
    for suffix, override in _ENV_OVERRIDES.items():
        raw = env.get(f"{ENV_PREFIX}{suffix}")
        if raw is None:
            continue
        result = override(result, raw)
    return result


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """Load configuration from ``path`` (optional) and apply environment overrides."""

    config = load_config_file(path) if path is not None else ClientConfig()
    return apply_env_overrides(config, os.environ if env is None else env)


def env_token_provider(env: Optional[Mapping[str, str]] = None) -> Callable[[], Optional[str]]:
    source = os.environ if env is None else env

    def provide() -> Optional[str]:
        return source.get(TOKEN_ENV) or None

    return provide
