"""Vendor stream adapters for llm_streamcore."""
from .anthropic import AnthropicAdapter
from .base import (
    CONTINUATION_PROMPTS,
    ContinuationPolicy,
    Framing,
    StreamAdapter,
    StreamRequest,
)
from .gemini import GeminiAdapter
from .ollama import OllamaAdapter
from .openai import OpenAIAdapter
from .provider_registry import ProviderRegistry, create_adapter, get_provider_registry

__all__ = [
    'CONTINUATION_PROMPTS', 'ContinuationPolicy', 'Framing',
    'StreamAdapter', 'StreamRequest',
    'AnthropicAdapter', 'GeminiAdapter', 'OllamaAdapter', 'OpenAIAdapter',
    'ProviderRegistry', 'create_adapter', 'get_provider_registry',
]
