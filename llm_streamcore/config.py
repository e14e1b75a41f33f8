"""
Configuration management for llm_streamcore.
Reads provider and loop settings from a JSON file and API keys from the environment.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from .constants import (
    CONFIG_FILE,
    DEFAULT_LANGUAGE,
    DEFAULT_PROVIDER,
    DEFAULT_TEMPERATURE,
    EXCHANGE_TIMEOUT_SECONDS,
    HISTORY_LIMIT,
    MAX_ROUNDS,
    OPENAI_HOST,
    PROVIDERS,
    ROUND_TIMEOUT_SECONDS,
    TOOL_RESULT_MAX_CHARS,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """
    Vendor selection and request settings for one exchange.

    Immutable: adapters read it at construction and never change it.
    Empty base_url/model fall back to the vendor defaults in PROVIDERS.
    """
    provider: str = DEFAULT_PROVIDER
    base_url: str = ""
    api_key: Optional[str] = None
    model: str = ""
    temperature: float = DEFAULT_TEMPERATURE
    context_limit: Optional[int] = None
    output_limit: Optional[int] = None
    language: str = DEFAULT_LANGUAGE
    native_tools: Optional[bool] = None
    debug_stream: bool = False

    @property
    def defaults(self) -> dict:
        return PROVIDERS.get(self.provider, {})

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or self.defaults.get("base_url", "")).rstrip("/")

    @property
    def resolved_model(self) -> str:
        return self.model or self.defaults.get("default_model", "")

    @property
    def resolved_context_limit(self) -> int:
        return self.context_limit or self.defaults.get("context_limit", 8192)

    @property
    def resolved_output_limit(self) -> int:
        if self.output_limit:
            return self.output_limit
        return self.defaults.get("output_limit") or int(self.resolved_context_limit * 0.08) or 4096

    @property
    def is_openai_compatible_endpoint(self) -> bool:
        """True for a custom base URL that is not api.openai.com itself."""
        if not self.base_url:
            return False
        host = urlparse(self.base_url.lower()).netloc or self.base_url.lower()
        return OPENAI_HOST not in host

    @property
    def is_minimax_compatible(self) -> bool:
        base_url = self.base_url.lower()
        return "minimax" in base_url or "minimax" in self.model.lower()


@dataclass(frozen=True)
class ExchangeSettings:
    """Limits applied by the orchestration loop."""
    round_timeout: float = ROUND_TIMEOUT_SECONDS
    exchange_timeout: float = EXCHANGE_TIMEOUT_SECONDS
    max_rounds: int = MAX_ROUNDS
    tool_result_max_chars: int = TOOL_RESULT_MAX_CHARS
    history_limit: int = HISTORY_LIMIT

    def __post_init__(self) -> None:
        if self.round_timeout <= 0 or self.exchange_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")


@dataclass
class LLMConfig:
    """JSON-backed provider settings."""
    provider: str = DEFAULT_PROVIDER
    model: str = ""
    base_url: str = ""
    temperature: float = DEFAULT_TEMPERATURE
    language: str = DEFAULT_LANGUAGE
    context_limit: Optional[int] = None
    output_limit: Optional[int] = None
    native_tools: Optional[bool] = None
    debug_stream: bool = False


@dataclass
class AppConfig:
    """Everything stored in the config file."""
    llm: LLMConfig = field(default_factory=LLMConfig)
    exchange: dict = field(default_factory=dict)
    api_keys: dict = field(default_factory=dict)


def _known_fields(cls: type, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in names}


class ConfigManager:
    """
    Manages configuration stored as JSON plus API keys from the environment.

    Environment variables take precedence over config file values for API keys,
    and keys that came from the environment are never written back to disk.
    """

    def __init__(self, config_file: Optional[Path] = None, environ: Optional[dict] = None) -> None:
        self._config_file = Path(config_file) if config_file else CONFIG_FILE
        self._environ = os.environ if environ is None else environ
        self._config = AppConfig()
        self._env_keys: set[str] = set()
        self._load_config()
        self._load_env_vars()

    @property
    def config(self) -> AppConfig:
        return self._config

    def _load_config(self) -> None:
        """Read the JSON file, falling back to defaults when it is unusable."""
        if not self._config_file.exists():
            return

        try:
            with open(self._config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if "llm" in data:
                self._config.llm = LLMConfig(**_known_fields(LLMConfig, data["llm"]))
            if "exchange" in data:
                self._config.exchange = _known_fields(ExchangeSettings, data["exchange"])
            if "api_keys" in data:
                self._config.api_keys = dict(data["api_keys"])
        except (json.JSONDecodeError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load config file {self._config_file}: {e}")
            self._config = AppConfig()

    def _load_env_vars(self) -> None:
        """Overlay API keys found in the environment."""
        for info in PROVIDERS.values():
            key = info.get("env_key")
            if not key:
                continue
            value = self._environ.get(key)
            if value:
                self._config.api_keys[key] = value
                self._env_keys.add(key)

    def save(self) -> None:
        """Write settings and file-sourced API keys back to disk."""
        data = {
            "llm": asdict(self._config.llm),
            "exchange": dict(self._config.exchange),
            "api_keys": {
                k: v for k, v in self._config.api_keys.items() if k not in self._env_keys
            },
        }
        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get_api_key(self, env_key: Optional[str]) -> Optional[str]:
        if not env_key:
            return None
        return self._config.api_keys.get(env_key)

    def set_api_key(self, env_key: str, value: str) -> None:
        self._config.api_keys[env_key] = value
        self._env_keys.discard(env_key)

    def provider_config(self, **overrides: Any) -> ProviderConfig:
        """
        Build an immutable ProviderConfig from stored settings.

        Args:
            **overrides: Field values that win over the stored ones (None is ignored)

        Returns:
            ProviderConfig for one exchange
        """
        values = asdict(self._config.llm)
        values.update({k: v for k, v in overrides.items() if v is not None})
        provider = values["provider"]
        if "api_key" not in values:
            env_key = PROVIDERS.get(provider, {}).get("env_key")
            values["api_key"] = self.get_api_key(env_key)
        return ProviderConfig(**_known_fields(ProviderConfig, values))

    def exchange_settings(self, **overrides: Any) -> ExchangeSettings:
        values = dict(self._config.exchange)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ExchangeSettings(**values)


_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the process-wide ConfigManager, loading it on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
