"""
Prompt assembly for one exchange.

Pure functions: the system instruction from sections, the first-round
user prompt with injected context, and the history window that fits the
vendor's context budget. Nothing here performs I/O.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..constants import (
    CHARS_PER_TOKEN,
    CONTEXT_CHAR_BUDGETS,
    DEFAULT_CONTEXT_CHAR_BUDGET,
    HISTORY_TOKEN_RESERVE,
)
from ..models import Message, NoteFile, Role, ToolMode
from ..tools.catalog import ToolDefinition
from .sections import SectionContext, SectionManager, create_default_sections

logger = logging.getLogger(__name__)

OMISSION_NOTICES = {
    "en": "[Context truncated - {count} earlier messages omitted]",
    "zh": "[上下文截断 - 已省略 {count} 条早期消息]",
}


def build_system_instruction(
    base_instruction: str = "",
    tools: Sequence[ToolDefinition] = (),
    tool_mode: ToolMode = ToolMode.NONE,
    language: str = "en",
    completion_marker: bool = False,
    sections: Optional[SectionManager] = None,
) -> str:
    """
    Compose the system instruction.

    Args:
        base_instruction: Host-supplied system instruction
        tools: Tools offered in this exchange
        tool_mode: Native, in-text block, or no tool guidance
        language: Response language
        completion_marker: Ask the model to end with the completion marker
        sections: Section set to render (default sections if omitted)

    Returns:
        The instruction text; identical inputs give identical output
    """
    context = SectionContext(
        base_instruction=base_instruction or "",
        tools=tuple(tools),
        tool_mode=tool_mode if tools else ToolMode.NONE,
        language=language,
        completion_marker=completion_marker,
    )
    manager = sections if sections is not None else create_default_sections()
    return manager.render_all(context)


def context_char_budget(provider: str) -> int:
    return CONTEXT_CHAR_BUDGETS.get(provider, DEFAULT_CONTEXT_CHAR_BUDGET)


def build_user_prompt(
    prompt: str,
    provider: str,
    context_files: Sequence[NoteFile] = (),
    retrieved_context: Optional[str] = None,
) -> str:
    """
    Inject context into the first-round user prompt.

    A retrieved-context block takes precedence over raw documents. Raw
    documents are concatenated and cut to the vendor's character budget.
    """
    if retrieved_context:
        return (
            "You are answering based on the provided Knowledge Base.\n\n"
            f"relevant_context:\n{retrieved_context}\n\n"
            f"user_query: {prompt}"
        )

    if context_files:
        combined = "\n\n".join(
            f"--- File: {note.display_name} ---\n{note.content}" for note in context_files
        )
        budget = context_char_budget(provider)
        if len(combined) > budget:
            logger.debug(f"Context documents cut from {len(combined)} to {budget} chars")
            combined = combined[:budget]
        return f"Context from user knowledge base:\n{combined}\n\nUser Query: {prompt}"

    return prompt


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class HistorySelection:
    """History window sent with the first round."""
    messages: list = field(default_factory=list)
    omitted: int = 0


def select_history(
    history: Sequence[Message],
    history_limit: int,
    context_limit: int,
    output_limit: int,
    system_instruction: str = "",
    prompt: str = "",
) -> HistorySelection:
    """
    Pick the newest user/assistant messages that fit the token budget.

    The window is capped at history_limit messages, then shrunk from the
    oldest end while the estimated tokens of system instruction, prompt
    and history exceed context_limit - output_limit - reserve.

    Returns:
        Kept messages in original order and the number omitted
    """
    conversational = [m for m in history if m.role in (Role.USER, Role.ASSISTANT)]
    window = conversational[-history_limit:] if history_limit > 0 else []
    omitted = len(conversational) - len(window)

    available = (
        context_limit
        - output_limit
        - HISTORY_TOKEN_RESERVE
        - estimate_tokens(system_instruction)
        - estimate_tokens(prompt)
    )
    kept: list = []
    for message in reversed(window):
        cost = estimate_tokens(message.content)
        if cost > available:
            break
        available -= cost
        kept.append(message)
    kept.reverse()

    omitted += len(window) - len(kept)
    if omitted:
        logger.info(f"History truncated: {omitted} earlier messages omitted")
    return HistorySelection(messages=kept, omitted=omitted)


def with_omission_notice(prompt: str, omitted: int, language: str = "en") -> str:
    """Prefix the prompt with a notice when earlier messages were dropped."""
    if omitted <= 0:
        return prompt
    template = OMISSION_NOTICES.get(language, OMISSION_NOTICES["en"])
    return f"{template.format(count=omitted)}\n\n---\n\n{prompt}"
