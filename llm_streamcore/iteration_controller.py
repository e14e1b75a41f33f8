"""
Iteration controller for the orchestration loop.

Counts rounds within one exchange and stops the loop once the round
budget is spent, producing the notice shown to the user.
"""
from .completion_detector import CompletionResult
from .constants import MAX_ROUNDS

_EXHAUSTED_NOTICES = {
    "en": "⚠️ **Warning**: Maximum tool rounds ({limit}) reached. The answer may be incomplete.",
    "zh": "⚠️ **警告**: 已达到最大工具调用轮数（{limit}），回答可能不完整。",
}


class IterationController:
    """Controls the round loop of one exchange."""

    def __init__(self, max_rounds: int = MAX_ROUNDS, language: str = "en") -> None:
        """Create a controller for one exchange.

        Args:
            max_rounds: Maximum number of rounds per exchange.
            language: Language of the exhaustion notice.
        """
        self.max_rounds = max_rounds
        self.language = language
        self.current_round = 0

    def on_round_start(self) -> None:
        """Called at the start of each round."""
        self.current_round += 1

    def should_continue(self, completion_result: CompletionResult) -> bool:
        """Whether the loop should run another round after this result."""
        if self.is_at_max_rounds():
            return False
        return completion_result.should_continue

    def is_at_max_rounds(self) -> bool:
        return self.current_round >= self.max_rounds

    def on_max_rounds_reached(self) -> str:
        template = _EXHAUSTED_NOTICES.get(self.language, _EXHAUSTED_NOTICES["en"])
        return template.format(limit=self.max_rounds)
