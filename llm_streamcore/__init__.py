"""
LLM StreamCore - streaming multi-vendor LLM orchestration with tool calling.
"""
from .constants import APP_DESCRIPTION, APP_NAME, APP_VERSION
from .config import ExchangeSettings, ProviderConfig
from .errors import ParseError, SetupError, StreamCoreError, ToolExecutionError, TransportError
from .models import Message, NoteFile, Role, ToolCall, ToolCallStatus, ToolMode, ToolResult
from .orchestrator import Exchange, ExchangeResult, ExchangeState, Orchestrator

__version__ = APP_VERSION
__all__ = [
    'APP_NAME', 'APP_VERSION', 'APP_DESCRIPTION',
    'ExchangeSettings', 'ProviderConfig',
    'ParseError', 'SetupError', 'StreamCoreError', 'ToolExecutionError', 'TransportError',
    'Message', 'NoteFile', 'Role', 'ToolCall', 'ToolCallStatus', 'ToolMode', 'ToolResult',
    'Exchange', 'ExchangeResult', 'ExchangeState', 'Orchestrator',
]
