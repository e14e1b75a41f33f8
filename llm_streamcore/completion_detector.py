"""
Completion detection for streamed rounds.

Vendors without native streamed tool calls signal the end of a task with
a free-text marker. CompletionMarkerFilter strips the marker from the
visible stream, holding back any tail that could be the start of a marker
split across fragments. CompletionDetector turns what a round produced
into a continue/stop verdict.
"""
from dataclasses import dataclass
from typing import Optional

from .constants import COMPLETION_MARKER


@dataclass
class CompletionResult:
    """Verdict for one finished round.

    Attributes:
        is_complete: Whether the exchange has its final answer.
        reason: "marker", "tool_calls" or "final_answer".
        should_continue: Whether another round should start.
    """
    is_complete: bool
    reason: str
    should_continue: bool


class CompletionMarkerFilter:
    """Removes the completion marker from a fragment stream.

    Example:
        f = CompletionMarkerFilter()
        f.feed("Done [TASK_")   # -> "Done "
        f.feed("COMPLETE]")     # -> ""
        f.seen                  # -> True
    """

    def __init__(self, marker: str = COMPLETION_MARKER, enabled: bool = True) -> None:
        self.marker = marker
        self.enabled = enabled
        self.seen = False
        self._held = ""

    def feed(self, fragment: str) -> str:
        """Return the part of fragment that is safe to show now."""
        if not self.enabled:
            return fragment

        buffer = self._held + fragment
        if self.marker in buffer:
            self.seen = True
            buffer = buffer.replace(self.marker, "")

        hold = self._partial_suffix(buffer)
        self._held = buffer[len(buffer) - hold:] if hold else ""
        return buffer[:len(buffer) - hold] if hold else buffer

    def flush(self) -> str:
        """Release held-back text at end of stream; it was not a marker."""
        held, self._held = self._held, ""
        return held

    def _partial_suffix(self, text: str) -> int:
        # Longest suffix of text that is a proper prefix of the marker
        for size in range(min(len(self.marker) - 1, len(text)), 0, -1):
            if self.marker.startswith(text[-size:]):
                return size
        return 0


class CompletionDetector:
    """Decides whether a round ends the exchange.

    The marker is terminal even when the round also produced tool calls;
    otherwise tool calls continue the loop and plain text is the answer.
    """

    def evaluate(self, marker_seen: bool, has_tool_calls: bool) -> CompletionResult:
        if marker_seen:
            return CompletionResult(is_complete=True, reason="marker", should_continue=False)
        if has_tool_calls:
            return CompletionResult(is_complete=False, reason="tool_calls", should_continue=True)
        return CompletionResult(is_complete=True, reason="final_answer", should_continue=False)

    def describe(self, result: Optional[CompletionResult]) -> str:
        if result is None:
            return "pending"
        return f"{result.reason} (continue={result.should_continue})"
