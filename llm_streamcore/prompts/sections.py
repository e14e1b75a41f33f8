"""
Prompt sections for the system instruction.

Each section is a small, pure renderer over a SectionContext. The
SectionManager renders registered sections in (order, name) order and
joins them with blank lines, so identical contexts always yield
byte-identical instructions.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..constants import COMPLETION_MARKER
from ..models import ToolMode
from ..tools.catalog import ToolDefinition
from .guide import tool_distinction_guide, usage_tips

TEXT_BLOCK_FORMAT = (
    "When you need to use a tool, output a tool call in this exact JSON format:\n"
    "```tool_call\n"
    '{"tool": "tool_name", "arguments": {...}}\n'
    "```"
)

LANGUAGE_DIRECTIVES = {
    "zh": "IMPORTANT: Respond in Chinese (Simplified) for all content, explanations, and labels.",
}


@dataclass(frozen=True)
class SectionContext:
    """Inputs shared by every section of one instruction.

    Attributes:
        base_instruction: Host-supplied system instruction
        tools: Tools offered in this exchange, in registration order
        tool_mode: How tool calls are expressed (native, in-text, none)
        language: Response language ("en" or "zh")
        completion_marker: Whether the model should end with the marker
    """
    base_instruction: str = ""
    tools: tuple = ()
    tool_mode: ToolMode = ToolMode.NONE
    language: str = "en"
    completion_marker: bool = False


class PromptSection(ABC):
    """One named, ordered piece of the system instruction.

    Sections are rendered in ascending `order`; ties break on `name`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def order(self) -> int:
        """Sort order (lower = earlier in prompt). Default is 50."""
        return 50

    @abstractmethod
    def render(self, context: SectionContext) -> str:
        """Render this section to text."""
        ...

    def should_include(self, context: SectionContext) -> bool:
        return True


class BaseInstructionSection(PromptSection):
    """The host's own system instruction, verbatim."""

    @property
    def name(self) -> str:
        return "base"

    @property
    def order(self) -> int:
        return 10

    def should_include(self, context: SectionContext) -> bool:
        return bool(context.base_instruction.strip())

    def render(self, context: SectionContext) -> str:
        return context.base_instruction.strip()


class ToolGuidanceSection(PromptSection):
    """Lists the tools and, in text-block mode, the tool-call block format.

    Example output (native mode):
        ## Your Available Tools

        You are equipped with 2 tools that you CAN and SHOULD use ...

        **Available Tools:**
        - **read_file**: Read a note file
        ...
    """

    @property
    def name(self) -> str:
        return "tools"

    @property
    def order(self) -> int:
        return 30

    def should_include(self, context: SectionContext) -> bool:
        return context.tool_mode is not ToolMode.NONE and bool(context.tools)

    def render(self, context: SectionContext) -> str:
        tools: tuple = context.tools
        parts = [
            "## Your Available Tools",
            f"You are equipped with {len(tools)} tools that you CAN and SHOULD use when "
            "appropriate. These tools are already connected and ready to use.",
        ]
        if context.tool_mode is ToolMode.TEXT_BLOCK:
            parts.append(TEXT_BLOCK_FORMAT)

        parts.append("**Available Tools:**\n" + "\n".join(_describe(tool) for tool in tools))

        external = [tool.name for tool in tools if not tool.is_internal]
        tips = usage_tips(external, context.language)
        if tips:
            parts.append(tips)

        parts.append(
            "**Important:** You HAVE these tools - they are not hypothetical. "
            "Do NOT say \"I don't have access to...\" for tools listed above."
        )
        if context.completion_marker:
            parts.append(
                f"When the task is fully complete and no more tools are needed, "
                f"end your final answer with {COMPLETION_MARKER}."
            )
        return "\n\n".join(parts)


class ToolDistinctionSection(PromptSection):
    """Separates app note tools from external tools."""

    @property
    def name(self) -> str:
        return "tool_distinction"

    @property
    def order(self) -> int:
        return 40

    def should_include(self, context: SectionContext) -> bool:
        return context.tool_mode is not ToolMode.NONE and bool(context.tools)

    def render(self, context: SectionContext) -> str:
        return tool_distinction_guide(context.language)


class LanguageSection(PromptSection):
    """Response-language directive; English needs none."""

    @property
    def name(self) -> str:
        return "language"

    @property
    def order(self) -> int:
        return 90

    def should_include(self, context: SectionContext) -> bool:
        return context.language in LANGUAGE_DIRECTIVES

    def render(self, context: SectionContext) -> str:
        return LANGUAGE_DIRECTIVES[context.language]


def _describe(tool: ToolDefinition) -> str:
    description = " ".join(tool.description.split())
    return f"- **{tool.name}**: {description}" if description else f"- **{tool.name}**"


class SectionManager:
    """Ordered set of prompt sections, keyed by name.

    Example:
        manager = SectionManager()
        manager.register(BaseInstructionSection())
        instruction = manager.render_all(context)
    """

    def __init__(self) -> None:
        self._sections: dict[str, PromptSection] = {}

    def register(self, section: PromptSection) -> None:
        """Add a section.

        Raises:
            ValueError: If the name is taken.
        """
        if section.name in self._sections:
            raise ValueError(f"Duplicate prompt section '{section.name}'")
        self._sections[section.name] = section

    def unregister(self, name: str) -> None:
        if name not in self._sections:
            raise KeyError(f"No prompt section named '{name}'")
        del self._sections[name]

    def get(self, name: str) -> Optional[PromptSection]:
        return self._sections.get(name)

    def render_all(self, context: SectionContext) -> str:
        """Render the included, non-empty sections joined by blank lines."""
        ordered = sorted(self._sections.values(), key=lambda s: (s.order, s.name))
        parts = [section.render(context) for section in ordered if section.should_include(context)]
        return "\n\n".join(part for part in parts if part)

    def list_sections(self) -> list[str]:
        return list(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __contains__(self, name: str) -> bool:
        return name in self._sections


def create_default_sections() -> SectionManager:
    """SectionManager with the base, tools, distinction and language sections."""
    manager = SectionManager()
    manager.register(BaseInstructionSection())
    manager.register(ToolGuidanceSection())
    manager.register(ToolDistinctionSection())
    manager.register(LanguageSection())
    return manager
