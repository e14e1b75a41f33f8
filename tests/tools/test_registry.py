"""
Tests for the tool registry and gateway registration.
"""

import allure
import pytest

from llm_streamcore.errors import ToolExecutionError
from llm_streamcore.tools.catalog import GATEWAY, ToolDefinition, builtin_tool_definitions
from llm_streamcore.tools.registry import ToolGateway, ToolRegistry


class FakeGateway:
    def __init__(self, descriptors: list) -> None:
        self.descriptors = descriptors
        self.calls: list = []

    def get_tools(self) -> list[dict]:
        return self.descriptors

    async def call_tool(self, name: str, args: dict):
        self.calls.append((name, args))
        return {"output": f"{name} ok"}


@allure.feature("Tool Registry")
@allure.story("Duplicate names")
@allure.severity(allure.severity_level.NORMAL)
def test_register_rejects_duplicates_and_empty_names():
    registry = ToolRegistry()
    registry.register(ToolDefinition(name="echo"), lambda args: args)

    with pytest.raises(ValueError):
        registry.register(ToolDefinition(name="echo"), lambda args: args)
    with pytest.raises(ValueError):
        registry.register(ToolDefinition(name=""), lambda args: args)

    assert registry.unregister("echo")
    assert not registry.unregister("echo")


@allure.feature("Tool Registry")
@allure.story("Sync and async handlers")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.asyncio
async def test_call_awaits_async_handlers():
    async def shout(args: dict) -> str:
        return args["text"].upper()

    registry = ToolRegistry()
    registry.register(ToolDefinition(name="echo"), lambda args: args["text"])
    registry.register(ToolDefinition(name="shout"), shout)

    assert await registry.call("echo", {"text": "hi"}) == "hi"
    assert await registry.call("shout", {"text": "hi"}) == "HI"

    with pytest.raises(ToolExecutionError, match="Unknown tool 'nope'"):
        await registry.call("nope", {})


@allure.feature("Tool Registry")
@allure.story("Gateway tools")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.asyncio
async def test_register_gateway():
    gateway = FakeGateway([
        {"name": "click", "description": "Click", "inputSchema": {"type": "object", "properties": {}}},
        {"name": "  ", "description": "nameless"},
        {"name": "read_file", "description": "shadowing"},
        {"name": "navigate_page"},
    ])
    assert isinstance(gateway, ToolGateway)

    registry = ToolRegistry()
    registry.register(builtin_tool_definitions()[3], lambda args: {})

    assert registry.register_gateway(gateway) == 2
    assert registry.is_gateway("click")
    assert not registry.is_internal("click")
    assert registry.definition("click").source == GATEWAY
    assert registry.definition("read_file").description != "shadowing"

    assert await registry.call("click", {"uid": "3"}) == {"output": "click ok"}
    assert gateway.calls == [("click", {"uid": "3"})]


@allure.feature("Tool Registry")
@allure.story("Internal tools")
@allure.severity(allure.severity_level.NORMAL)
def test_internal_only_for_builtin_source():
    assert ToolDefinition(name="read_file").is_internal
    assert not ToolDefinition(name="read_file", source=GATEWAY).is_internal
    assert not ToolDefinition(name="click").is_internal


@allure.feature("Tool Registry")
@allure.story("Built-in catalog")
@allure.severity(allure.severity_level.NORMAL)
def test_builtin_definitions():
    names = [d.name for d in builtin_tool_definitions()]
    assert names == ["create_file", "update_file", "delete_file", "read_file", "search_files",
                     "search_knowledge_base"]
    assert "search_knowledge_base" not in [d.name for d in builtin_tool_definitions(False)]

    descriptor = ToolDefinition.from_descriptor({"name": "x", "parameters": {"type": "object"}})
    assert descriptor.parameters == {"type": "object"}
    assert descriptor.to_gemini_declaration()["parameters"] == {"type": "object"}
