"""
Anthropic Messages API stream adapter for llm_streamcore.
"""
from typing import Optional, Sequence

from ..accumulator import AnthropicToolDecoder, ToolDecoder
from ..constants import ANTHROPIC_VERSION
from ..models import ToolCall, ToolResult
from ..tools.catalog import ToolDefinition
from .base import Framing, StreamAdapter, StreamRequest


class AnthropicAdapter(StreamAdapter):
    """
    Typed-event SSE stream from /v1/messages.

    `event:` lines are ignored; each `data:` line carries a typed record
    (content_block_start, content_block_delta, content_block_stop,
    message_delta, message_stop). An `error` record aborts the round.

    MiniMax exposes an Anthropic-compatible endpoint that does not accept
    native tool definitions; it falls back to in-text tool blocks.
    """

    name = "anthropic"
    framing = Framing.SSE
    streams_tool_calls = True

    @property
    def has_streaming_tool_calls(self) -> bool:
        return not self._config.is_minimax_compatible

    @property
    def has_native_tools(self) -> bool:
        return not self._config.is_minimax_compatible

    def _endpoint(self, request: StreamRequest) -> str:
        return f"{self._config.resolved_base_url}/v1/messages"

    def _build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def initial_messages(self, request: StreamRequest) -> list:
        messages = self.history_messages(request.history)
        messages.append(self.text_message("user", request.prompt))
        return messages

    def _build_payload(self, request: StreamRequest) -> dict:
        payload = {
            "model": self._config.resolved_model,
            "messages": self._messages_for(request),
            "max_tokens": self._config.resolved_output_limit,
            "temperature": self._config.temperature,
            "stream": True,
        }
        if request.system_instruction:
            payload["system"] = request.system_instruction
        if request.tools:
            payload["tools"] = self.format_tools(request.tools)
        return payload

    def format_tools(self, tools: Sequence[ToolDefinition]) -> list:
        return [tool.to_anthropic_format() for tool in tools]

    def _error_message(self, record: dict) -> Optional[str]:
        if record.get("type") == "error":
            error = record.get("error")
            if isinstance(error, dict):
                return str(error.get("message") or error.get("type") or "error")
            return str(error or "error")
        return super()._error_message(record)

    def extract_text(self, record: dict) -> str:
        if record.get("type") != "content_block_delta":
            return ""
        delta = record.get("delta")
        if not isinstance(delta, dict) or delta.get("type") != "text_delta":
            return ""
        text = delta.get("text")
        return text if isinstance(text, str) else ""

    def tool_decoder(self) -> ToolDecoder:
        return AnthropicToolDecoder()

    def summarize(self, record: dict) -> dict:
        summary = {"type": record.get("type"), "index": record.get("index")}
        delta = record.get("delta")
        if isinstance(delta, dict):
            summary["delta"] = delta.get("type") or delta.get("stop_reason")
        return summary

    def append_tool_round(
        self,
        messages: list,
        text: str,
        calls: Sequence[ToolCall],
        results: Sequence[ToolResult],
    ) -> None:
        content: list = []
        if text.strip():
            content.append({"type": "text", "text": text})
        for call in calls:
            content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.args})
        messages.append({"role": "assistant", "content": content})
        messages.append({
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": call.id, "content": result.formatted}
                for call, result in zip(calls, results)
            ],
        })
