"""
Prompt assembly for llm_streamcore.

Builds the system instruction from ordered sections and the first-round
user prompt with injected context and a bounded history window.
"""
from .builder import (
    HistorySelection,
    build_system_instruction,
    build_user_prompt,
    context_char_budget,
    estimate_tokens,
    select_history,
    with_omission_notice,
)
from .guide import categorize_tool, tool_distinction_guide, usage_tips
from .sections import (
    BaseInstructionSection,
    LanguageSection,
    PromptSection,
    SectionContext,
    SectionManager,
    ToolDistinctionSection,
    ToolGuidanceSection,
    create_default_sections,
)

__all__ = [
    "BaseInstructionSection",
    "HistorySelection",
    "LanguageSection",
    "PromptSection",
    "SectionContext",
    "SectionManager",
    "ToolDistinctionSection",
    "ToolGuidanceSection",
    "build_system_instruction",
    "build_user_prompt",
    "categorize_tool",
    "context_char_budget",
    "create_default_sections",
    "estimate_tokens",
    "select_history",
    "tool_distinction_guide",
    "usage_tips",
    "with_omission_notice",
]
