"""
Tool definitions and their per-vendor wire shapes.

Built-in tools are declared once in OpenAI function format and rendered
for the other vendors on demand.
"""
from dataclasses import dataclass, field
from typing import Any

BUILTIN = "builtin"
GATEWAY = "gateway"

INTERNAL_TOOL_NAMES = frozenset({
    "create_file",
    "update_file",
    "delete_file",
    "read_file",
    "search_files",
    "search_knowledge_base",
})

_EMPTY_SCHEMA: dict = {"type": "object", "properties": {}}

# Built-in note tools in OpenAI format
NOTE_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "create_file",
            "description": "Create a new file with the given name and content. Use this to create documents.",
            "parameters": {
                "type": "object",
                "properties": {
                    "filename": {"type": "string", "description": "Name of the file (e.g. 'notes.md')"},
                    "content": {"type": "string", "description": "Markdown content of the file"},
                },
                "required": ["filename", "content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_file",
            "description": "Update an existing file, replacing its content.",
            "parameters": {
                "type": "object",
                "properties": {
                    "filename": {"type": "string", "description": "Name of the file to update"},
                    "content": {"type": "string", "description": "New content"},
                },
                "required": ["filename", "content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "delete_file",
            "description": "Delete a file by name.",
            "parameters": {
                "type": "object",
                "properties": {
                    "filename": {"type": "string", "description": "Name of the file to delete"},
                },
                "required": ["filename"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "read_file",
            "description": "Read the content of a specific file. Optionally specify line range to read.",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File name or path to read"},
                    "startLine": {"type": "number", "description": "Optional: Start line number (1-indexed)"},
                    "endLine": {"type": "number", "description": "Optional: End line number (1-indexed)"},
                },
                "required": ["path"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "search_files",
            "description": "Search for a keyword across all files. Returns matching lines with line numbers.",
            "parameters": {
                "type": "object",
                "properties": {
                    "keyword": {"type": "string", "description": "Keyword to search for in file contents"},
                    "filePattern": {
                        "type": "string",
                        "description": "Optional: File name pattern to filter (e.g., 'todo', '.md')",
                    },
                },
                "required": ["keyword"],
            },
        },
    },
]

SEARCH_KNOWLEDGE_BASE_TOOL = {
    "type": "function",
    "function": {
        "name": "search_knowledge_base",
        "description": (
            "Search the user's indexed notes and documents. Use this when the user asks about "
            "their notes, references specific documents, or needs information from their knowledge base."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
                "maxResults": {"type": "number", "description": "Maximum results (default: 5, max: 8)"},
            },
            "required": ["query"],
        },
    },
}


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool offered to the model.

    Attributes:
        name: Tool name, unique within a registry
        description: What the tool does, shown to the model
        parameters: JSON Schema for the arguments object
        source: BUILTIN for tools handled in-process, GATEWAY for external tools
    """
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))
    source: str = BUILTIN

    @property
    def is_internal(self) -> bool:
        return self.source == BUILTIN and self.name in INTERNAL_TOOL_NAMES

    @classmethod
    def from_openai_format(cls, tool_dict: dict[str, Any], source: str = BUILTIN) -> "ToolDefinition":
        """Create a ToolDefinition from an OpenAI function-tool dict."""
        func = tool_dict.get("function", tool_dict)
        return cls(
            name=func.get("name", ""),
            description=func.get("description", ""),
            parameters=func.get("parameters") or dict(_EMPTY_SCHEMA),
            source=source,
        )

    @classmethod
    def from_descriptor(cls, descriptor: dict[str, Any]) -> "ToolDefinition":
        """Create a gateway ToolDefinition from a {name, description, inputSchema} descriptor."""
        schema = descriptor.get("inputSchema") or descriptor.get("parameters") or dict(_EMPTY_SCHEMA)
        return cls(
            name=str(descriptor.get("name", "")).strip(),
            description=descriptor.get("description") or "",
            parameters=schema,
            source=GATEWAY,
        )

    def to_openai_format(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_anthropic_format(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

    def to_gemini_declaration(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


def builtin_tool_definitions(include_knowledge_search: bool = True) -> list[ToolDefinition]:
    """Definitions for the built-in note tools (and knowledge search)."""
    tools = [ToolDefinition.from_openai_format(t) for t in NOTE_TOOLS]
    if include_knowledge_search:
        tools.append(ToolDefinition.from_openai_format(SEARCH_KNOWLEDGE_BASE_TOOL))
    return tools
