"""
Built-in tool handlers: note files and knowledge-base search.

NoteWorkspace keeps the host's note files in memory and implements the
five note tools over them. Knowledge search delegates to a host-supplied
search capability; its indexing and ranking are out of scope here.
"""
import logging
import time
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from ..constants import TRUNCATION_MARKER
from ..errors import ToolExecutionError
from ..models import NoteFile
from .catalog import NOTE_TOOLS, SEARCH_KNOWLEDGE_BASE_TOOL, ToolDefinition
from .registry import ToolRegistry

logger = logging.getLogger(__name__)

KB_DEFAULT_RESULTS = 5
KB_MAX_RESULTS = 8
KB_EXCERPT_CHARS = 100
KB_SUMMARY_CHARS = 500
SEARCH_MAX_MATCHES_PER_FILE = 10
SEARCH_MAX_FILES = 20


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _number(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


class NoteWorkspace:
    """In-memory note files the model can create, read, update, delete and search."""

    def __init__(self, files: Optional[Iterable[NoteFile]] = None) -> None:
        self._files: list[NoteFile] = list(files or [])

    @property
    def files(self) -> list[NoteFile]:
        return list(self._files)

    def find(self, query: str) -> Optional[NoteFile]:
        for note in self._files:
            if note.matches(query):
                return note
        return None

    def create_file(self, args: dict) -> dict:
        filename = _string(args.get("filename"))
        if not filename:
            raise ToolExecutionError("Missing filename")
        note = NoteFile(
            name=filename.replace(".md", "", 1),
            content=_string(args.get("content")),
            path=filename,
        )
        self._files.append(note)
        return {"success": True, "message": f"Created file: {filename}"}

    def update_file(self, args: dict) -> dict:
        filename = _string(args.get("filename"))
        note = self.find(filename)
        if note is None:
            raise ToolExecutionError("File not found")
        note.content = _string(args.get("content"))
        note.last_modified = time.time()
        return {"success": True, "message": f"Updated file: {filename}"}

    def delete_file(self, args: dict) -> dict:
        filename = _string(args.get("filename"))
        note = self.find(filename)
        if note is None:
            raise ToolExecutionError("File not found")
        self._files = [f for f in self._files if f.id != note.id]
        return {"success": True, "message": f"Deleted file: {filename}"}

    def read_file(self, args: dict) -> dict:
        path = _string(args.get("path"))
        note = self.find(path)
        if note is None:
            available = [f.display_name for f in self._files if f.display_name]
            return {"success": False, "error": "File not found", "availableFiles": available}

        lines = note.content.split("\n")
        start_value = _number(args.get("startLine"))
        end_value = _number(args.get("endLine"))
        start = max(0, (start_value if start_value is not None else 1) - 1)
        end = min(len(lines), end_value if end_value is not None else len(lines))
        return {
            "success": True,
            "fileName": note.display_name,
            "content": "\n".join(lines[start:end]),
            "lineRange": {"start": start + 1, "end": end},
            "totalLines": len(lines),
        }

    def search_files(self, args: dict) -> dict:
        keyword = _string(args.get("keyword"))
        if not keyword:
            raise ToolExecutionError("Missing keyword parameter")
        file_pattern = _string(args.get("filePattern"))
        needle = keyword.lower()

        results = []
        for note in self._files:
            file_name = note.display_name
            if file_pattern and file_pattern not in file_name:
                continue
            matches = [
                {"line": number, "content": line.strip()}
                for number, line in enumerate(note.content.split("\n"), start=1)
                if needle in line.lower()
            ]
            if matches:
                results.append({"fileName": file_name, "matches": matches[:SEARCH_MAX_MATCHES_PER_FILE]})

        return {
            "success": True,
            "keyword": keyword,
            "filePattern": file_pattern or None,
            "totalFiles": len(results),
            "totalMatches": sum(len(r["matches"]) for r in results),
            "results": results[:SEARCH_MAX_FILES],
        }

    def register_tools(self, registry: ToolRegistry) -> None:
        """Register the five note tools with a registry."""
        handlers = {
            "create_file": self.create_file,
            "update_file": self.update_file,
            "delete_file": self.delete_file,
            "read_file": self.read_file,
            "search_files": self.search_files,
        }
        for tool in NOTE_TOOLS:
            definition = ToolDefinition.from_openai_format(tool)
            registry.register(definition, handlers[definition.name])


@runtime_checkable
class KnowledgeSearch(Protocol):
    """
    Host knowledge-base search.

    search_with_results returns {"results": [...], "context": str}. Each
    result has a "score" in [0, 1] and a "chunk" with "text" and
    "metadata": {"fileName": ...}.
    """

    async def search_with_results(self, query: str, config: Any, max_results: int) -> dict:
        ...


class KnowledgeBaseTool:
    """Handler for search_knowledge_base backed by a KnowledgeSearch."""

    def __init__(self, search: KnowledgeSearch, config: Any = None) -> None:
        self._search = search
        self._config = config

    async def __call__(self, args: dict) -> dict:
        query = _string(args.get("query"))
        requested = _number(args.get("maxResults"))
        max_results = min(requested if requested is not None else KB_DEFAULT_RESULTS, KB_MAX_RESULTS)

        response = await self._search.search_with_results(query, self._config, max_results)
        results = response.get("results") or []
        context = response.get("context") or ""

        sources = []
        for item in results:
            chunk = item.get("chunk") or {}
            metadata = chunk.get("metadata") or {}
            excerpt = (chunk.get("text") or "")[:KB_EXCERPT_CHARS].replace("\n", " ").strip()
            sources.append({
                "file": metadata.get("fileName", ""),
                "relevance": f"{round(float(item.get('score', 0)) * 100)}%",
                "excerpt": f"{excerpt}...",
            })

        if len(context) > KB_SUMMARY_CHARS:
            context = f"{context[:KB_SUMMARY_CHARS]}{TRUNCATION_MARKER}"

        return {
            "success": True,
            "query": query,
            "matchCount": len(results),
            "sources": sources,
            "summary": context,
        }

    def register(self, registry: ToolRegistry) -> None:
        registry.register(ToolDefinition.from_openai_format(SEARCH_KNOWLEDGE_BASE_TOOL), self)


def create_builtin_registry(
    files: Optional[Iterable[NoteFile]] = None,
    knowledge_search: Optional[KnowledgeSearch] = None,
    search_config: Any = None,
) -> tuple[ToolRegistry, NoteWorkspace]:
    """
    Build a registry with the note tools and, if a search backend is
    given, search_knowledge_base.

    Returns:
        (registry, workspace) so the host can read back edited files
    """
    registry = ToolRegistry()
    workspace = NoteWorkspace(files)
    workspace.register_tools(registry)
    if knowledge_search is not None:
        KnowledgeBaseTool(knowledge_search, search_config).register(registry)
    return registry, workspace
