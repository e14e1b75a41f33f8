"""Tool executor for handling model tool calls."""
import logging
import re
from typing import Any, Callable, Optional

from ..constants import TOOL_RESULT_MAX_CHARS
from ..models import ToolResult
from .catalog import INTERNAL_TOOL_NAMES
from .formatting import format_tool_result
from .registry import ToolCallback

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>]+")

# Tools whose "url" argument models tend to forget
_URL_TOOLS = frozenset({"navigate_page", "new_page"})


def extract_last_url(text: str) -> Optional[str]:
    matches = _URL_PATTERN.findall(text or "")
    return matches[-1] if matches else None


def resolve_fallback_args(name: str, args: dict, context_text: str) -> dict:
    """
    Fill a missing navigation url from the most recent URL in context_text.

    Returns args unchanged when the tool is not a navigation tool, the url
    is already present, or no URL can be found.
    """
    if name not in _URL_TOOLS:
        return args
    url = args.get("url")
    if isinstance(url, str) and url.strip():
        return args
    fallback = extract_last_url(context_text)
    if not fallback:
        return args
    logger.debug(f"Using fallback url {fallback} for {name}")
    return {**args, "url": fallback}


class ToolExecutor:
    """
    Executes tool calls through a callback and renders bounded results.

    Handler exceptions never escape execute(); they become a failed
    ToolResult carrying {"error": message}.
    """

    def __init__(
        self,
        callback: ToolCallback,
        max_chars: int = TOOL_RESULT_MAX_CHARS,
        is_internal: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self._callback = callback
        self._max_chars = max_chars
        self._is_internal = is_internal or (lambda name: name in INTERNAL_TOOL_NAMES)

    async def execute(self, name: str, args: dict[str, Any]) -> ToolResult:
        """Execute a tool and return its result with a bounded rendering."""
        try:
            value = await self._callback(name, args)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning(f"Tool {name} failed: {message}")
            result: Any = {"error": message}
            success = False
        else:
            result = value
            success = not (isinstance(value, dict) and value.get("success") is False)

        formatted = format_tool_result(
            name,
            result,
            success=success,
            internal=self._is_internal(name),
            max_chars=self._max_chars,
        )
        return ToolResult(success=success, result=result, formatted=formatted)
