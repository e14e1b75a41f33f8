"""
Provider registry for llm_streamcore.
Maps vendor names to stream adapter classes and builds configured adapters.
"""
from typing import Dict, Optional, Type

import httpx

from ..config import ProviderConfig
from ..errors import SetupError
from .base import StreamAdapter


class ProviderRegistry:
    """
    Registry for vendor stream adapters.

    Adapters are created per exchange because each one is bound to an
    immutable ProviderConfig; only the classes are kept here.
    """

    def __init__(self) -> None:
        self._adapters: Dict[str, Type[StreamAdapter]] = {}
        self._register_default_adapters()

    def _register_default_adapters(self) -> None:
        """Register built-in adapters."""
        from .anthropic import AnthropicAdapter
        from .gemini import GeminiAdapter
        from .ollama import OllamaAdapter
        from .openai import OpenAIAdapter

        self.register("openai", OpenAIAdapter)
        self.register("anthropic", AnthropicAdapter)
        self.register("ollama", OllamaAdapter)
        self.register("gemini", GeminiAdapter)

    def register(self, name: str, adapter_class: Type[StreamAdapter]) -> None:
        """
        Register an adapter class.

        Args:
            name: Vendor name/identifier
            adapter_class: StreamAdapter subclass
        """
        self._adapters[name.lower()] = adapter_class

    def unregister(self, name: str) -> bool:
        return self._adapters.pop(name.lower(), None) is not None

    def get(self, name: str) -> Optional[Type[StreamAdapter]]:
        return self._adapters.get(name.lower())

    def create(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> StreamAdapter:
        """
        Build an adapter for config.provider.

        Args:
            config: Provider configuration
            transport: Optional httpx transport passed to the adapter

        Returns:
            Configured adapter

        Raises:
            SetupError: If the vendor is unknown or credentials are missing
        """
        adapter_class = self.get(config.provider)
        if adapter_class is None:
            raise SetupError(
                f"Unknown provider '{config.provider}'. Available: {self.list_providers()}"
            )
        return adapter_class(config, transport=transport)

    def list_providers(self) -> list[str]:
        return list(self._adapters.keys())

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._adapters


_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    """Get the global provider registry instance."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry


def create_adapter(
    config: ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StreamAdapter:
    """Build an adapter from the global registry."""
    return get_provider_registry().create(config, transport=transport)
