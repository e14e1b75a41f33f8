"""
Tool registry: resolves tool names to handlers.

Handlers take the argument dict and return a JSON value, either directly
or as an awaitable. Tools exposed by an external gateway are registered
with a handler that forwards to gateway.call_tool.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from ..errors import ToolExecutionError
from ..models import JsonValue
from .catalog import GATEWAY, ToolDefinition

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict], Union[JsonValue, Awaitable[JsonValue]]]
ToolCallback = Callable[[str, dict], Awaitable[JsonValue]]


@runtime_checkable
class ToolGateway(Protocol):
    """External tool process, opaque to the core."""

    def get_tools(self) -> list[dict]:
        """Return tool descriptors ({name, description, inputSchema})."""
        ...

    async def call_tool(self, name: str, args: dict) -> Any:
        ...


class ToolRegistry:
    """
    Registry of tools available to an exchange.

    The registry doubles as a ToolCallback: `await registry.call(name, args)`
    resolves and runs the handler.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, ToolDefinition] = {}
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        """
        Register a tool.

        Args:
            definition: Tool definition offered to the model
            handler: Callable executing the tool

        Raises:
            ValueError: If the name is empty or already registered
        """
        if not definition.name:
            raise ValueError("Tool name must not be empty")
        if definition.name in self._definitions:
            raise ValueError(f"Tool '{definition.name}' is already registered")
        self._definitions[definition.name] = definition
        self._handlers[definition.name] = handler

    def unregister(self, name: str) -> bool:
        if name not in self._definitions:
            return False
        del self._definitions[name]
        del self._handlers[name]
        return True

    def register_gateway(self, gateway: ToolGateway) -> int:
        """
        Register every tool the gateway exposes.

        Descriptors without a name, or whose name is already taken, are skipped.

        Returns:
            Number of tools registered
        """
        count = 0
        for descriptor in gateway.get_tools():
            definition = ToolDefinition.from_descriptor(descriptor)
            if not definition.name:
                continue
            if definition.name in self._definitions:
                logger.warning(f"Gateway tool '{definition.name}' shadows a registered tool; skipped")
                continue
            self.register(definition, _gateway_handler(gateway, definition.name))
            count += 1
        logger.debug(f"Registered {count} gateway tools")
        return count

    def get(self, name: str) -> Optional[ToolHandler]:
        return self._handlers.get(name)

    def definition(self, name: str) -> Optional[ToolDefinition]:
        return self._definitions.get(name)

    def definitions(self) -> list[ToolDefinition]:
        return list(self._definitions.values())

    def is_internal(self, name: str) -> bool:
        definition = self._definitions.get(name)
        return definition is not None and definition.is_internal

    def is_gateway(self, name: str) -> bool:
        definition = self._definitions.get(name)
        return definition is not None and definition.source == GATEWAY

    async def call(self, name: str, args: dict) -> JsonValue:
        """
        Run the handler registered for name.

        Raises:
            ToolExecutionError: If no such tool is registered
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolExecutionError(f"Unknown tool '{name}'")
        value = handler(args)
        if inspect.isawaitable(value):
            value = await value
        return value

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


def _gateway_handler(gateway: ToolGateway, name: str) -> ToolHandler:
    async def handler(args: dict) -> Any:
        return await gateway.call_tool(name, args)
    return handler
