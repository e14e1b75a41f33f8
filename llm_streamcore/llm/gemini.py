"""
Google Gemini (generativelanguage REST) stream adapter for llm_streamcore.
"""
from typing import Sequence

from ..accumulator import GeminiToolDecoder, ToolDecoder
from ..models import Message, Role, ToolCall, ToolResult
from ..tools.catalog import ToolDefinition
from .base import Framing, StreamAdapter, StreamRequest


class GeminiAdapter(StreamAdapter):
    """
    Gemini generateContent endpoints.

    Plain chat uses :streamGenerateContent?alt=sse, which ends when the
    connection closes (no sentinel). With native tools the adapter calls
    :generateContent and reads functionCall parts from the single
    response document.
    """

    name = "gemini"
    framing = Framing.SSE

    def _endpoint(self, request: StreamRequest) -> str:
        base = f"{self._config.resolved_base_url}/models/{self._config.resolved_model}"
        if self._is_streaming(request):
            return f"{base}:streamGenerateContent?alt=sse"
        return f"{base}:generateContent"

    def _build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self._config.api_key or "",
        }

    def _is_streaming(self, request: StreamRequest) -> bool:
        return not request.tools

    def text_message(self, role: str, text: str) -> dict:
        return {"role": "model" if role == "assistant" else "user", "parts": [{"text": text}]}

    def history_messages(self, history: Sequence[Message]) -> list:
        return [
            self.text_message(message.role.value, message.content)
            for message in history
            if message.role in (Role.USER, Role.ASSISTANT)
        ]

    def initial_messages(self, request: StreamRequest) -> list:
        contents = self.history_messages(request.history)
        contents.append(self.text_message("user", request.prompt))
        return contents

    def _build_payload(self, request: StreamRequest) -> dict:
        payload = {
            "contents": self._messages_for(request),
            "generationConfig": {"temperature": self._config.temperature},
        }
        if request.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}
        if request.tools:
            payload["tools"] = self.format_tools(request.tools)
        return payload

    def format_tools(self, tools: Sequence[ToolDefinition]) -> list:
        return [{"functionDeclarations": [tool.to_gemini_declaration() for tool in tools]}]

    def extract_text(self, record: dict) -> str:
        candidates = record.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return ""
        # Thought summaries are not part of the answer
        return "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought")
        )

    def tool_decoder(self) -> ToolDecoder:
        return GeminiToolDecoder()

    def summarize(self, record: dict) -> dict:
        candidates = record.get("candidates") or [{}]
        candidate = candidates[0] if isinstance(candidates[0], dict) else {}
        content = candidate.get("content") if isinstance(candidate.get("content"), dict) else {}
        parts = content.get("parts") or []
        return {
            "parts": [sorted(p)[0] for p in parts if isinstance(p, dict) and p],
            "finishReason": candidate.get("finishReason"),
        }

    def append_tool_round(
        self,
        messages: list,
        text: str,
        calls: Sequence[ToolCall],
        results: Sequence[ToolResult],
    ) -> None:
        parts: list = []
        if text.strip():
            parts.append({"text": text})
        for call in calls:
            parts.append({"functionCall": {"name": call.name, "args": call.args}})
        messages.append({"role": "model", "parts": parts})
        messages.append({
            "role": "user",
            "parts": [
                {"functionResponse": {"name": call.name, "response": {"content": result.formatted}}}
                for call, result in zip(calls, results)
            ],
        })
