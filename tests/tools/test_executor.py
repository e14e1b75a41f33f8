"""
Tests for tool execution, result rendering and navigation url fallback.
"""

import asyncio
import json

import allure
import pytest
from hypothesis import given, settings, strategies as st

from llm_streamcore.constants import TRUNCATION_MARKER
from llm_streamcore.errors import ToolExecutionError
from llm_streamcore.tools.executor import ToolExecutor, extract_last_url, resolve_fallback_args


def callback_returning(value):
    async def callback(name: str, args: dict):
        return value
    return callback


def callback_raising(error: Exception):
    async def callback(name: str, args: dict):
        raise error
    return callback


@allure.feature("Tool Execution")
@allure.story("Successful internal tool")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.asyncio
async def test_internal_result_rendered_as_json():
    executor = ToolExecutor(callback_returning({"success": True, "content": "hi"}))

    result = await executor.execute("read_file", {"path": "a.md"})

    assert result.success
    assert json.loads(result.formatted) == {"success": True, "content": "hi"}


@allure.feature("Tool Execution")
@allure.story("Handler exceptions become failed results")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.asyncio
@pytest.mark.parametrize("error,message", [
    (RuntimeError("disk full"), "disk full"),
    (ToolExecutionError("File not found"), "File not found"),
    (KeyError(), "KeyError"),
])
async def test_exception_is_captured(error: Exception, message: str):
    executor = ToolExecutor(callback_raising(error))

    result = await executor.execute("create_file", {})

    assert not result.success
    assert result.result == {"error": message}
    assert result.error_message == message
    assert message in result.formatted


@allure.feature("Tool Execution")
@allure.story("success=false results count as failures")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.asyncio
async def test_success_false_is_failure():
    executor = ToolExecutor(callback_returning({"success": False, "error": "File not found"}))

    result = await executor.execute("read_file", {"path": "missing.md"})

    assert not result.success
    assert result.error_message == "File not found"


@allure.feature("Tool Execution")
@allure.story("Gateway results are summarized")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.asyncio
async def test_gateway_tool_failure_summary():
    executor = ToolExecutor(callback_raising(RuntimeError("timeout")), is_internal=lambda name: False)

    result = await executor.execute("click", {"uid": "1"})

    assert result.formatted == "❌ **click** failed\n> Error: timeout"


# **Feature: tool-execution, Property 1: Rendered results are bounded**
@allure.feature("Tool Execution")
@allure.story("Result size cap")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100, deadline=None)
@given(text=st.text(max_size=400), limit=st.integers(min_value=1, max_value=200))
def test_formatted_result_is_bounded(text: str, limit: int):
    """
    Property 1: Rendered results are bounded

    *For any* handler output and character limit, the rendering is at
    most limit characters plus the truncation marker, and carries the
    marker exactly when the full rendering was longer.

    **Validates: Tool execution, bounded rendering**
    """
    executor = ToolExecutor(callback_returning({"content": text}), max_chars=limit)
    result = asyncio.run(executor.execute("read_file", {}))

    full = json.dumps({"content": text}, ensure_ascii=False)
    if len(full) > limit:
        assert result.formatted == full[:limit] + TRUNCATION_MARKER
    else:
        assert result.formatted == full


@allure.feature("Tool Execution")
@allure.story("Navigation url fallback")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("name,args,context,expected", [
    ("navigate_page", {}, "see https://a.example and https://b.example/x.", {"url": "https://b.example/x."}),
    ("new_page", {"url": " "}, "open https://c.example", {"url": "https://c.example"}),
    ("navigate_page", {"url": "https://kept.example"}, "https://other.example", {"url": "https://kept.example"}),
    ("navigate_page", {}, "no links here", {}),
    ("read_file", {}, "https://a.example", {}),
])
def test_resolve_fallback_args(name: str, args: dict, context: str, expected: dict):
    assert resolve_fallback_args(name, args, context) == expected


@allure.feature("Tool Execution")
@allure.story("URL extraction")
@allure.severity(allure.severity_level.NORMAL)
def test_extract_last_url():
    assert extract_last_url('go to "https://x.example/a?b=1" now') == "https://x.example/a?b=1"
    assert extract_last_url("") is None
