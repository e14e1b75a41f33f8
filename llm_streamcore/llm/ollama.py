"""
Ollama (local) stream adapter for llm_streamcore.
"""
from typing import Sequence

from ..accumulator import OllamaToolDecoder, ToolDecoder
from ..models import ToolCall, ToolResult
from .base import Framing, StreamAdapter, StreamRequest


class OllamaAdapter(StreamAdapter):
    """
    Ollama /api/chat.

    Plain chat streams newline-delimited JSON objects. With native tools
    the request is sent with stream=false and the single response document
    carries message.tool_calls whole. No API key is needed.
    """

    name = "ollama"
    framing = Framing.NDJSON
    requires_api_key = False

    def _endpoint(self, request: StreamRequest) -> str:
        return f"{self._config.resolved_base_url}/api/chat"

    def _build_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _is_streaming(self, request: StreamRequest) -> bool:
        return not request.tools

    def _build_payload(self, request: StreamRequest) -> dict:
        payload = {
            "model": self._config.resolved_model,
            "messages": self._messages_for(request),
            "stream": self._is_streaming(request),
            "options": {"temperature": self._config.temperature},
        }
        if request.tools:
            payload["tools"] = self.format_tools(request.tools)
        return payload

    def extract_text(self, record: dict) -> str:
        message = record.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content if isinstance(content, str) else ""

    def tool_decoder(self) -> ToolDecoder:
        return OllamaToolDecoder()

    def summarize(self, record: dict) -> dict:
        message = record.get("message") if isinstance(record.get("message"), dict) else {}
        return {
            "content": len(message.get("content") or ""),
            "tool_calls": len(message.get("tool_calls") or []),
            "done": record.get("done"),
        }

    def append_tool_round(
        self,
        messages: list,
        text: str,
        calls: Sequence[ToolCall],
        results: Sequence[ToolResult],
    ) -> None:
        messages.append({
            "role": "assistant",
            "content": text,
            "tool_calls": [
                {"function": {"name": call.name, "arguments": call.args}} for call in calls
            ],
        })
        for result in results:
            messages.append({"role": "tool", "content": result.formatted})
