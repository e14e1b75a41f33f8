"""
Constants and configuration defaults for llm_streamcore.
"""
from pathlib import Path
from typing import Final

APP_NAME: Final[str] = "llm_streamcore"
APP_VERSION: Final[str] = "0.1.0"
APP_DESCRIPTION: Final[str] = "Streaming multi-vendor LLM orchestration core"

CONFIG_DIR: Final[Path] = Path.home() / ".llm_streamcore"
CONFIG_FILE: Final[Path] = CONFIG_DIR / "config.json"

DEFAULT_PROVIDER: Final[str] = "openai"
DEFAULT_TEMPERATURE: Final[float] = 0.7
DEFAULT_LANGUAGE: Final[str] = "en"
SUPPORTED_LANGUAGES: Final[tuple] = ("en", "zh")

# Exchange ceilings (seconds)
ROUND_TIMEOUT_SECONDS: Final[float] = 60.0
EXCHANGE_TIMEOUT_SECONDS: Final[float] = 600.0
HTTP_TIMEOUT_SECONDS: Final[float] = 120.0

MAX_ROUNDS: Final[int] = 10
HISTORY_LIMIT: Final[int] = 20
HISTORY_TOKEN_RESERVE: Final[int] = 500
CHARS_PER_TOKEN: Final[int] = 3

TOOL_RESULT_MAX_CHARS: Final[int] = 8000
GATEWAY_OUTPUT_MAX_CHARS: Final[int] = 500
TRUNCATION_MARKER: Final[str] = "...(truncated)"

COMPLETION_MARKER: Final[str] = "[TASK_COMPLETE]"

# Raw context documents are cut to this many characters per vendor
CONTEXT_CHAR_BUDGETS: Final[dict] = {
    "gemini": 2_000_000,
}
DEFAULT_CONTEXT_CHAR_BUDGET: Final[int] = 30_000

ANTHROPIC_VERSION: Final[str] = "2023-06-01"
OPENAI_HOST: Final[str] = "api.openai.com"

PROVIDERS: Final[dict] = {
    "openai": {
        "name": "OpenAI",
        "base_url": "https://api.openai.com/v1",
        "env_key": "OPENAI_API_KEY",
        "default_model": "gpt-4o-mini",
        "context_limit": 128000,
        "output_limit": 4096,
    },
    "anthropic": {
        "name": "Anthropic",
        "base_url": "https://api.anthropic.com",
        "env_key": "ANTHROPIC_API_KEY",
        "default_model": "claude-sonnet-4-20250514",
        "context_limit": 200000,
        "output_limit": 16000,
    },
    "ollama": {
        "name": "Ollama",
        "base_url": "http://localhost:11434",
        "env_key": None,
        "default_model": "llama3",
        "context_limit": 8192,
        "output_limit": 2048,
    },
    "gemini": {
        "name": "Gemini",
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "env_key": "GEMINI_API_KEY",
        "default_model": "gemini-2.5-flash",
        "context_limit": 1000000,
        "output_limit": 8192,
    },
}
