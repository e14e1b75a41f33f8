"""
Property-based tests for system-instruction and user-prompt assembly.

**Feature: prompt-assembly**
"""

import allure
import pytest
from hypothesis import given, settings, strategies as st

from llm_streamcore.constants import COMPLETION_MARKER
from llm_streamcore.models import Message, NoteFile, Role, ToolMode
from llm_streamcore.prompts import (
    build_system_instruction,
    build_user_prompt,
    categorize_tool,
    estimate_tokens,
    select_history,
    tool_distinction_guide,
    usage_tips,
    with_omission_notice,
)
from llm_streamcore.prompts.sections import LANGUAGE_DIRECTIVES, TEXT_BLOCK_FORMAT
from llm_streamcore.tools.catalog import GATEWAY, ToolDefinition, builtin_tool_definitions


safe_text = st.text(
    alphabet=st.characters(whitelist_categories=('L', 'N', 'Zs'), whitelist_characters='_-.,!?'),
    max_size=60,
)

tool_definitions = st.lists(
    st.builds(
        ToolDefinition,
        name=st.text(alphabet=st.characters(whitelist_categories=('L', 'N'), whitelist_characters='_'),
                     min_size=1, max_size=15),
        description=safe_text,
        source=st.sampled_from(["builtin", GATEWAY]),
    ),
    max_size=6,
    unique_by=lambda t: t.name,
)


# **Feature: prompt-assembly, Property 1: Assembly is idempotent**
@allure.feature("Prompt Assembly")
@allure.story("Identical inputs, identical instruction")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(
    base=safe_text,
    tools=tool_definitions,
    mode=st.sampled_from(list(ToolMode)),
    language=st.sampled_from(["en", "zh"]),
    marker=st.booleans(),
)
def test_assembly_is_idempotent(base, tools, mode, language, marker):
    """
    Property 1: Assembly is idempotent

    *For any* inputs, building the instruction twice gives byte-identical
    text, and every offered tool is named when tools are guided.

    **Validates: Prompt assembly, determinism**
    """
    first = build_system_instruction(base, tools, mode, language, marker)
    second = build_system_instruction(base, list(tools), mode, language, marker)

    assert first == second
    if tools and mode is not ToolMode.NONE:
        for tool in tools:
            assert f"- **{tool.name}**" in first
    else:
        assert "## Your Available Tools" not in first


@allure.feature("Prompt Assembly")
@allure.story("Text-block format only in text-block mode")
@allure.severity(allure.severity_level.CRITICAL)
def test_text_block_mode_includes_format():
    tools = builtin_tool_definitions()

    native = build_system_instruction("Base.", tools, ToolMode.NATIVE)
    text_block = build_system_instruction("Base.", tools, ToolMode.TEXT_BLOCK, completion_marker=True)

    assert TEXT_BLOCK_FORMAT not in native
    assert TEXT_BLOCK_FORMAT in text_block
    assert COMPLETION_MARKER not in native
    assert f"end your final answer with {COMPLETION_MARKER}." in text_block
    assert text_block.startswith("Base.\n\n## Your Available Tools\n\nYou are equipped with 6 tools")


@allure.feature("Prompt Assembly")
@allure.story("Distinction guide needs tools")
@allure.severity(allure.severity_level.NORMAL)
def test_distinction_guide_only_with_tools():
    tools = builtin_tool_definitions()
    assert tool_distinction_guide() in build_system_instruction("", tools, ToolMode.NATIVE)
    assert tool_distinction_guide() not in build_system_instruction("Base.", [], ToolMode.NATIVE)
    assert build_system_instruction("Base.", tools, ToolMode.NONE) == "Base."


@allure.feature("Prompt Assembly")
@allure.story("Language directive")
@allure.severity(allure.severity_level.NORMAL)
def test_language_directive():
    zh = build_system_instruction("Base.", language="zh")
    assert zh == f"Base.\n\n{LANGUAGE_DIRECTIVES['zh']}"
    assert build_system_instruction("Base.", language="en") == "Base."

    guided = build_system_instruction("", builtin_tool_definitions(), ToolMode.NATIVE, language="zh")
    assert tool_distinction_guide("zh") in guided
    assert guided.endswith(LANGUAGE_DIRECTIVES["zh"])


@allure.feature("Prompt Assembly")
@allure.story("Usage tips for external tools")
@allure.severity(allure.severity_level.NORMAL)
def test_usage_tips_for_gateway_tools():
    gateway = [
        ToolDefinition(name="navigate_page", source=GATEWAY),
        ToolDefinition(name="take_snapshot", source=GATEWAY),
        ToolDefinition(name="web_search", source=GATEWAY),
    ]
    instruction = build_system_instruction("", builtin_tool_definitions() + gateway, ToolMode.NATIVE)

    assert "**Usage Tips:**" in instruction
    assert "🌐 Browser: navigate_page first, then take_snapshot" in instruction
    assert "🔍 Search: Query directly without opening pages" in instruction

    only_internal = build_system_instruction("", builtin_tool_definitions(), ToolMode.NATIVE)
    assert "**Usage Tips:**" not in only_internal


@allure.feature("Prompt Assembly")
@allure.story("Tool categories")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("name,category", [
    ("navigate_page", "browser"),
    ("web_search", "search"),
    ("write_file", "file"),
    ("run_sql", "database"),
    ("fetch_url", "network"),
    ("calculator", "general"),
])
def test_categorize_tool(name: str, category: str):
    assert categorize_tool(name) == category


@allure.feature("Prompt Assembly")
@allure.story("Usage tips text")
@allure.severity(allure.severity_level.NORMAL)
def test_usage_tips_text():
    assert usage_tips([]) == ""
    assert usage_tips(["calculator"]).startswith("**Usage Tips:**\n⚠️ Important:")
    assert usage_tips(["calculator"], "zh").startswith("**工具使用提示:**\n")


# User prompt

@allure.feature("Prompt Assembly")
@allure.story("Retrieved context wins")
@allure.severity(allure.severity_level.CRITICAL)
def test_retrieved_context_takes_precedence():
    prompt = build_user_prompt(
        "What is due?",
        "openai",
        context_files=[NoteFile(name="todo", content="milk")],
        retrieved_context="todo.md: milk",
    )
    assert prompt == (
        "You are answering based on the provided Knowledge Base.\n\n"
        "relevant_context:\ntodo.md: milk\n\n"
        "user_query: What is due?"
    )


@allure.feature("Prompt Assembly")
@allure.story("Raw documents are cut to the vendor budget")
@allure.severity(allure.severity_level.NORMAL)
def test_context_files_are_budgeted():
    big = NoteFile(name="big", content="x" * 40_000)
    prompt = build_user_prompt("Summarize", "openai", context_files=[big])

    header = "Context from user knowledge base:\n"
    assert prompt.startswith(header + "--- File: big ---\n")
    assert prompt.endswith("\n\nUser Query: Summarize")
    assert len(prompt) == len(header) + 30_000 + len("\n\nUser Query: Summarize")

    gemini = build_user_prompt("Summarize", "gemini", context_files=[big])
    assert "x" * 40_000 in gemini

    assert build_user_prompt("plain", "ollama") == "plain"


# History

def conversation(count: int, size: int = 30) -> list[Message]:
    roles = [Role.USER, Role.ASSISTANT]
    return [Message(role=roles[i % 2], content=f"{i:03d}" + "x" * (size - 3)) for i in range(count)]


# **Feature: prompt-assembly, Property 2: History keeps the newest suffix**
@allure.feature("Prompt Assembly")
@allure.story("History window")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(
    count=st.integers(min_value=0, max_value=30),
    history_limit=st.integers(min_value=0, max_value=25),
    context_limit=st.integers(min_value=600, max_value=1200),
)
def test_history_keeps_newest_suffix(count, history_limit, context_limit):
    """
    Property 2: History keeps the newest suffix

    *For any* history and limits, the kept messages are a contiguous
    newest suffix, never exceed history_limit, fit the token budget, and
    kept + omitted accounts for every conversational message.

    **Validates: Prompt assembly, history truncation**
    """
    history = conversation(count)
    selection = select_history(history, history_limit, context_limit, output_limit=100, prompt="hi")

    kept = selection.messages
    assert kept == history[len(history) - len(kept):]
    assert len(kept) <= history_limit
    assert len(kept) + selection.omitted == count
    budget = context_limit - 100 - 500 - estimate_tokens("hi")
    assert sum(estimate_tokens(m.content) for m in kept) <= max(budget, 0)


@allure.feature("Prompt Assembly")
@allure.story("Non-conversational messages are excluded")
@allure.severity(allure.severity_level.NORMAL)
def test_history_skips_tool_and_system_messages():
    history = [
        Message(role=Role.SYSTEM, content="sys"),
        Message(role=Role.USER, content="q"),
        Message(role=Role.TOOL, content="result"),
        Message(role=Role.ASSISTANT, content="a"),
    ]
    selection = select_history(history, 10, 10_000, 100)
    assert [m.role for m in selection.messages] == [Role.USER, Role.ASSISTANT]
    assert selection.omitted == 0


@allure.feature("Prompt Assembly")
@allure.story("Omission notice")
@allure.severity(allure.severity_level.NORMAL)
def test_omission_notice():
    assert with_omission_notice("Q", 0) == "Q"
    assert with_omission_notice("Q", 3) == "[Context truncated - 3 earlier messages omitted]\n\n---\n\nQ"
    assert with_omission_notice("Q", 2, "zh").startswith("[上下文截断 - 已省略 2 条早期消息]")
