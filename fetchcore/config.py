from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

OPTIMIZE_MODES = ("cost", "speed")
STORAGE_BACKENDS = ("memory", "filesystem")
LLM_PROVIDERS = ("anthropic", "openai", "openai-compatible")


def _choice(env: Mapping[str, str], name: str, default: str, allowed: tuple) -> str:
    value = (env.get(name) or default).strip().lower()
    if value not in allowed:
        raise ConfigurationError(f"{name} must be one of {', '.join(allowed)}; got {value!r}")
    return value


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = (env.get(name) or "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    firecrawl_api_key: Optional[str] = None
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    brightdata_api_key: Optional[str] = None
    brightdata_zone: str = "unblocker"
    brightdata_base_url: str = "https://api.brightdata.com"
    optimize_for: str = "cost"
    strategy_config_path: Optional[str] = None
    resource_storage: str = "memory"
    resource_storage_root: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_model: Optional[str] = None
    llm_api_base_url: Optional[str] = None
    fetch_timeout: float = 30.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        llm_provider = _optional(env, "LLM_PROVIDER")
        if llm_provider is not None:
            llm_provider = _choice(env, "LLM_PROVIDER", "anthropic", LLM_PROVIDERS)

        timeout_raw = _optional(env, "FETCH_TIMEOUT")
        try:
            fetch_timeout = float(timeout_raw) if timeout_raw else 30.0
        except ValueError:
            raise ConfigurationError(f"FETCH_TIMEOUT must be a number of seconds; got {timeout_raw!r}")
        if fetch_timeout <= 0:
            raise ConfigurationError("FETCH_TIMEOUT must be positive")

        return cls(
            firecrawl_api_key=_optional(env, "FIRECRAWL_API_KEY"),
            firecrawl_base_url=_optional(env, "FIRECRAWL_BASE_URL") or cls.firecrawl_base_url,
            brightdata_api_key=_optional(env, "BRIGHTDATA_API_KEY"),
            brightdata_zone=_optional(env, "BRIGHTDATA_ZONE") or cls.brightdata_zone,
            brightdata_base_url=_optional(env, "BRIGHTDATA_BASE_URL") or cls.brightdata_base_url,
            optimize_for=_choice(env, "OPTIMIZE_FOR", "cost", OPTIMIZE_MODES),
            strategy_config_path=_optional(env, "STRATEGY_CONFIG_PATH"),
            resource_storage=_choice(env, "RESOURCE_STORAGE", "memory", STORAGE_BACKENDS),
            resource_storage_root=_optional(env, "RESOURCE_STORAGE_ROOT"),
            llm_provider=llm_provider,
            llm_api_key=_optional(env, "LLM_API_KEY"),
            llm_model=_optional(env, "LLM_MODEL"),
            llm_api_base_url=_optional(env, "LLM_API_BASE_URL"),
            fetch_timeout=fetch_timeout,
        )
