"""
OpenAI (and OpenAI-compatible) stream adapter for llm_streamcore.
"""
import json
from typing import ClassVar, Optional, Sequence

from ..accumulator import OpenAIToolDecoder, ToolDecoder
from ..models import ToolCall, ToolResult
from .base import ContinuationPolicy, Framing, StreamAdapter, StreamRequest


def _ensure_json_arguments(call: ToolCall) -> str:
    """Arguments string to echo back; falls back to the parsed args when raw text is not JSON."""
    if call.raw_args:
        try:
            json.loads(call.raw_args)
        except json.JSONDecodeError:
            pass
        else:
            return call.raw_args
    return json.dumps(call.args, ensure_ascii=False)


class OpenAIAdapter(StreamAdapter):
    """
    Chat Completions over SSE.

    Text arrives in choices[0].delta.content; tool calls stream as indexed
    argument fragments and the stream ends with a `data: [DONE]` line.
    Custom base URLs (local servers, gateways) may run without an API key
    and get a continuation prompt after every tool round.
    """

    name = "openai"
    framing = Framing.SSE
    sse_sentinel = "[DONE]"
    streams_tool_calls = True
    continuation: ClassVar[Optional[ContinuationPolicy]] = ContinuationPolicy(compatible_endpoints_only=True)

    def _validate(self) -> None:
        if self._config.is_openai_compatible_endpoint:
            return
        super()._validate()

    def _endpoint(self, request: StreamRequest) -> str:
        return f"{self._config.resolved_base_url}/chat/completions"

    def _build_payload(self, request: StreamRequest) -> dict:
        payload = {
            "model": self._config.resolved_model,
            "messages": self._messages_for(request),
            "temperature": self._config.temperature,
            "stream": True,
        }
        if request.tools:
            payload["tools"] = self.format_tools(request.tools)
            payload["tool_choice"] = "auto"
        return payload

    def extract_text(self, record: dict) -> str:
        choices = record.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return ""
        content = delta.get("content")
        return content if isinstance(content, str) else ""

    def tool_decoder(self) -> ToolDecoder:
        return OpenAIToolDecoder()

    def summarize(self, record: dict) -> dict:
        choices = record.get("choices") or [{}]
        choice = choices[0] if isinstance(choices[0], dict) else {}
        delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else {}
        return {
            "content": len(delta.get("content") or ""),
            "tool_calls": len(delta.get("tool_calls") or []),
            "finish_reason": choice.get("finish_reason"),
        }

    def append_tool_round(
        self,
        messages: list,
        text: str,
        calls: Sequence[ToolCall],
        results: Sequence[ToolResult],
    ) -> None:
        # api.openai.com wants null content next to tool_calls; compatible servers reject null
        if text.strip():
            content: Optional[str] = text
        else:
            content = "" if self._config.is_openai_compatible_endpoint else None

        messages.append({
            "role": "assistant",
            "content": content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": _ensure_json_arguments(call)},
                }
                for call in calls
            ],
        })
        for call, result in zip(calls, results):
            messages.append({
                "role": "tool",
                "tool_call_id": call.id,
                "content": result.formatted,
            })

        prompt = self.continuation_prompt()
        if prompt:
            messages.append(self.text_message("user", prompt))
