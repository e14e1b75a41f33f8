"""
Tool registry, execution and in-text tool-call parsing.
"""
from .builtins import KnowledgeBaseTool, KnowledgeSearch, NoteWorkspace, create_builtin_registry
from .catalog import INTERNAL_TOOL_NAMES, ToolDefinition, builtin_tool_definitions
from .executor import ToolExecutor, extract_last_url, resolve_fallback_args
from .formatting import format_gateway_result, format_tool_result, truncate
from .parser import (
    BareJSONParser,
    FencedBlockParser,
    FormatParser,
    InvokeXMLParser,
    ParsedToolCall,
    TaggedJSONParser,
    ToolParser,
    create_default_parser,
)
from .registry import ToolCallback, ToolGateway, ToolRegistry

__all__ = [
    'INTERNAL_TOOL_NAMES',
    'BareJSONParser',
    'FencedBlockParser',
    'FormatParser',
    'InvokeXMLParser',
    'KnowledgeBaseTool',
    'KnowledgeSearch',
    'NoteWorkspace',
    'ParsedToolCall',
    'TaggedJSONParser',
    'ToolCallback',
    'ToolDefinition',
    'ToolExecutor',
    'ToolGateway',
    'ToolParser',
    'ToolRegistry',
    'builtin_tool_definitions',
    'create_builtin_registry',
    'create_default_parser',
    'extract_last_url',
    'format_gateway_result',
    'format_tool_result',
    'resolve_fallback_args',
    'truncate',
]
