"""Runtime settings: defaults, environment overrides and an optional YAML file."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from translation_flow.errors import ConfigurationError


logger = logging.getLogger("translation_flow.config")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class TranslationSettings:
    api_url: str = ""
    api_key: str = ""
    model: str = "gpt-4o-mini"
    fallback_model: str = "gpt-4o"
    fallback_enabled: bool = True
    timeout_seconds: float = 45.0
    max_retries: int = 2
    retry_delay: float = 1.0
    max_retry_delay: float = 10.0
    use_exponential_backoff: bool = True
    cache_ttl: float = 3600.0
    cache_max_entries: int = 1000
    cache_sweep_interval: float = 300.0
    dedupe_max_in_flight: int = 500
    min_request_interval: float = 0.0
    max_requests_per_minute: int = 0
    max_chunk_size: int = 1000
    long_text_threshold: int = 1500
    chunk_concurrency: int = 4
    model_token_limit: int = 6000
    token_safety_margin: int = 512
    min_response_tokens: int = 256
    temperature: float = 0.2
    top_p: float = 0.9
    html_balance_ratio: float = 0.3
    html_balance_min: int = 10
    billing_enabled: bool = False
    billing_bypass: bool = False
    hooks_timeout: float = 1.0
    api_stats_events: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TranslationSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        values: Dict[str, Any] = {
            "api_url": _env_str(env, "GPT_API_URL", defaults.api_url),
            "api_key": _env_str(env, "GPT_API_KEY", defaults.api_key),
            "model": _env_str(env, "GPT_MODEL", defaults.model),
            "fallback_model": _env_str(env, "GPT_FALLBACK_MODEL", defaults.fallback_model),
            "billing_enabled": _env_bool(env, "SHOPIFY_BILLING_ENABLED", defaults.billing_enabled),
            "billing_bypass": _env_bool(env, "BILLING_BYPASS", defaults.billing_bypass),
        }
        for field in fields(cls):
            if field.name in values:
                continue
            name = f"TRANSLATION_{field.name.upper()}"
            default = getattr(defaults, field.name)
            values[field.name] = _env_value(env, name, default)
        return cls(**values)

    def merged(self, data: Mapping[str, Any]) -> "TranslationSettings":
        known = {field.name: field for field in fields(self)}
        updates: Dict[str, Any] = {}
        for key, raw in data.items():
            if key not in known:
                logger.warning("Unknown setting %r ignored", key)
                continue
            default = getattr(self, key)
            parsed = _coerce(raw, default)
            if parsed is None:
                logger.warning("Invalid setting %s=%r, keeping %s", key, raw, default)
                continue
            updates[key] = parsed
        return replace(self, **updates) if updates else self

    def require_credentials(self) -> None:
        missing = [name for name in ("api_url", "api_key") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Translation API is not configured: missing {', '.join(missing)}",
                context={"missing": missing},
            )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_url and self.api_key)


def _coerce(raw: Any, default: Any) -> Any:
    """Parse ``raw`` to the type of ``default``; ``None`` when it does not fit."""
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        normalized = str(raw).strip().lower()
        if normalized in _TRUE:
            return True
        if normalized in _FALSE:
            return False
        return None
    parser: Optional[Callable[[Any], Any]] = None
    if isinstance(default, int):
        parser = int
    elif isinstance(default, float):
        parser = float
    if parser is not None:
        try:
            value = parser(str(raw).strip()) if isinstance(raw, str) else parser(raw)
        except (TypeError, ValueError):
            return None
        return value if value >= 0 else None
    return str(raw).strip()


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    if raw is None:
        return default
    normalized = str(raw).strip()
    return normalized if normalized else default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    return _env_value(env, name, default)


def _env_value(env: Mapping[str, str], name: str, default: Any) -> Any:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    value = _coerce(raw, default)
    if value is None:
        logger.warning("Invalid env %s=%r, fallback to %s", name, raw, default)
        return default
    return value


def load_settings(
    path: str | os.PathLike | None = None,
    environ: Mapping[str, str] | None = None,
) -> TranslationSettings:
    """Environment settings, overlaid with the YAML file at ``path`` if given."""
    settings = TranslationSettings.from_env(environ)
    if path is None:
        return settings
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")
    return settings.merged(data)
