"""
Bounded text rendering of tool results.

Internal tool results are rendered as compact JSON; gateway results are
condensed into a short status summary. Both are capped with an explicit
truncation marker before being shown or fed back to the model.
"""
import json
import re
from typing import Any

from ..constants import GATEWAY_OUTPUT_MAX_CHARS, TOOL_RESULT_MAX_CHARS, TRUNCATION_MARKER


def truncate(text: str, max_chars: int = TOOL_RESULT_MAX_CHARS) -> str:
    """Cut text to max_chars, appending the truncation marker when cut."""
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}{TRUNCATION_MARKER}"


def to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def format_gateway_result(tool_name: str, result: Any, success: bool = True) -> str:
    """
    Summarize an external tool result for display and re-injection.

    Args:
        tool_name: Name of the tool that ran
        result: Raw result returned by the gateway
        success: Whether the call succeeded

    Returns:
        Markdown status line, with an output excerpt where useful
    """
    record = result if isinstance(result, dict) else {}
    if record.get("success") is False:
        success = False

    if not success:
        detail = record.get("output") or record.get("error") or record.get("message") or ""
        if not record and result is not None:
            detail = result
        return f"❌ **{tool_name}** failed\n> Error: {to_text(detail)}"

    if "snapshot" in tool_name:
        output = record.get("output", result)
        if isinstance(output, str) and "Page content" in output:
            lines = output.split("\n")
            summary = "\n".join(lines[:10])
            return f"✅ **Page Snapshot** captured\n```\n{summary}\n...({len(lines)} total lines)\n```"

    if tool_name in ("fill", "fill_form"):
        return "✅ **Form filled** successfully"

    if tool_name == "click":
        return "✅ **Clicked** element"

    if tool_name in ("navigate_page", "new_page"):
        output = record.get("output", "")
        if isinstance(output, str) and "Pages" in output:
            page = re.search(r"(\d+):.*\[selected\]", output)
            suffix = f" (page {page.group(1)} selected)" if page else ""
            return f"✅ **{tool_name}** completed{suffix}"
        return "✅ **Navigated** to page"

    if tool_name == "take_screenshot":
        return "✅ **Screenshot** captured"

    if tool_name == "list_pages":
        pages = record.get("pages", result)
        if isinstance(pages, list):
            return f"✅ **Found {len(pages)} pages**"

    output = record.get("output")
    if isinstance(output, str):
        if len(output) > GATEWAY_OUTPUT_MAX_CHARS:
            return f"✅ **{tool_name}** completed\n```\n{output[:GATEWAY_OUTPUT_MAX_CHARS]}...\n```"
        return f"✅ **{tool_name}** completed\n```\n{output}\n```"

    if isinstance(result, str) and result:
        excerpt = result if len(result) <= GATEWAY_OUTPUT_MAX_CHARS else f"{result[:GATEWAY_OUTPUT_MAX_CHARS]}..."
        return f"✅ **{tool_name}** completed\n```\n{excerpt}\n```"

    if len(json.dumps(result, indent=2, default=str)) > 300:
        return f"✅ **{tool_name}** completed (result truncated)"
    return f"✅ **{tool_name}** completed"


def format_tool_result(
    tool_name: str,
    result: Any,
    success: bool,
    internal: bool,
    max_chars: int = TOOL_RESULT_MAX_CHARS,
) -> str:
    """Render a tool result as bounded text."""
    if internal:
        text = to_text(result)
    else:
        text = format_gateway_result(tool_name, result, success)
    return truncate(text, max_chars)
