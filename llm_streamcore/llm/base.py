"""
Base classes for vendor stream adapters in llm_streamcore.

An adapter owns one vendor's wire protocol: it builds the request, opens
the HTTP stream, decodes the vendor framing into JSON records, and
projects those records into text fragments and tool-call accumulator
events. Everything vendor-specific lives behind this interface, so the
orchestration loop never branches on the vendor.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, ClassVar, Mapping, Optional, Sequence, Union

import httpx

from ..accumulator import ToolCallAccumulator, ToolDecoder
from ..config import ProviderConfig
from ..constants import HTTP_TIMEOUT_SECONDS
from ..errors import ParseError, SetupError, TransportError
from ..models import Message, Role, ToolCall, ToolEventCallback, ToolMode, ToolResult
from ..tools.catalog import ToolDefinition

logger = logging.getLogger(__name__)

ERROR_BODY_MAX_CHARS = 500

CONTINUATION_PROMPTS: Mapping[str, str] = {
    "en": "Continue with the next step or provide your final answer.",
    "zh": "请继续下一步或给出最终答案。",
}


class Framing(Enum):
    """Wire framing of a vendor response body."""
    SSE = "sse"
    NDJSON = "ndjson"
    DOCUMENT = "document"


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


@dataclass
class StreamRequest:
    """
    Input for one streaming round.

    Attributes:
        prompt: User prompt for the first round
        system_instruction: Assembled system instruction
        history: Prior conversation; only user/assistant messages are sent
        tools: Tool definitions to offer natively (empty for none)
        messages: Vendor-shaped message list overriding prompt and history
    """
    prompt: str = ""
    system_instruction: str = ""
    history: Sequence[Message] = ()
    tools: Sequence[ToolDefinition] = ()
    messages: Optional[list] = None


@dataclass(frozen=True)
class ContinuationPolicy:
    """
    A user message appended after each tool round.

    Some endpoints stall after tool results unless explicitly nudged; the
    policy declares which adapters send the nudge and in which wording.
    """
    prompts: Mapping[str, str] = field(default_factory=lambda: dict(CONTINUATION_PROMPTS))
    compatible_endpoints_only: bool = False

    def prompt_for(self, config: ProviderConfig) -> Optional[str]:
        if self.compatible_endpoints_only and not config.is_openai_compatible_endpoint:
            return None
        return self.prompts.get(config.language, self.prompts.get("en"))


TEXT_BLOCK_CONTINUATION = ContinuationPolicy()


class StreamAdapter(ABC):
    """
    Abstract base class for vendor stream adapters.

    Subclasses declare their framing and capabilities as class attributes
    and implement request building, text projection and tool-result
    message shapes.
    """

    name: ClassVar[str] = ""
    framing: ClassVar[Framing] = Framing.SSE
    sse_sentinel: ClassVar[Optional[str]] = None
    streams_tool_calls: ClassVar[bool] = False
    supports_native_tools: ClassVar[bool] = True
    requires_api_key: ClassVar[bool] = True
    continuation: ClassVar[Optional[ContinuationPolicy]] = None

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: Provider configuration for this exchange
            transport: Optional httpx transport (used to stub the network)

        Raises:
            SetupError: If required credentials are missing
        """
        self._config = config
        self._transport = transport
        self._validate()

    def _validate(self) -> None:
        if self.requires_api_key and not self._config.api_key:
            raise SetupError(f"{self.name}: missing API key")

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def has_streaming_tool_calls(self) -> bool:
        """Whether tool-call fragments arrive interleaved with text deltas."""
        return self.streams_tool_calls

    @property
    def has_native_tools(self) -> bool:
        return self.supports_native_tools

    def tool_mode(self, tools: Sequence[ToolDefinition]) -> ToolMode:
        if not tools:
            return ToolMode.NONE
        if self._config.native_tools is False or not self.has_native_tools:
            return ToolMode.TEXT_BLOCK
        return ToolMode.NATIVE

    def uses_completion_marker(self, mode: ToolMode) -> bool:
        """The free-text completion marker applies without native streamed tool calls."""
        return mode is ToolMode.TEXT_BLOCK or not self.has_streaming_tool_calls

    # Request building

    @abstractmethod
    def _endpoint(self, request: StreamRequest) -> str:
        pass

    @abstractmethod
    def _build_payload(self, request: StreamRequest) -> dict:
        pass

    def _build_headers(self) -> dict[str, str]:
        """Build request headers with authentication."""
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _is_streaming(self, request: StreamRequest) -> bool:
        return True

    def text_message(self, role: str, text: str) -> dict:
        return {"role": role, "content": text}

    def history_messages(self, history: Sequence[Message]) -> list:
        messages = []
        for message in history:
            if message.role in (Role.USER, Role.ASSISTANT):
                messages.append(self.text_message(message.role.value, message.content))
        return messages

    def initial_messages(self, request: StreamRequest) -> list:
        """Vendor-shaped message list for the first round (system prompt included where inline)."""
        messages = []
        if request.system_instruction:
            messages.append(self.text_message("system", request.system_instruction))
        messages.extend(self.history_messages(request.history))
        messages.append(self.text_message("user", request.prompt))
        return messages

    def _messages_for(self, request: StreamRequest) -> list:
        if request.messages is not None:
            return list(request.messages)
        return self.initial_messages(request)

    # Decoding

    @abstractmethod
    def extract_text(self, record: dict) -> str:
        """Visible text carried by one decoded record."""
        pass

    def tool_decoder(self) -> ToolDecoder:
        return ToolDecoder()

    def new_accumulator(self, on_event: Optional[ToolEventCallback] = None) -> ToolCallAccumulator:
        return ToolCallAccumulator(self.tool_decoder(), on_event=on_event, provider=self.name)

    def summarize(self, record: dict) -> dict:
        """Compact description of a record for debug logging."""
        return {"keys": sorted(record)[:8]}

    def _decode_line(self, line: str, framing: Framing) -> Union[dict, None, _EndOfStream]:
        """
        Decode one line of a framed stream.

        Returns:
            The JSON record, None for lines that carry no record, or
            END_OF_STREAM for the vendor's terminal sentinel

        Raises:
            ParseError: If the line's payload is not a JSON object
        """
        stripped = line.strip()
        if not stripped:
            return None
        if framing is Framing.SSE:
            if not stripped.startswith("data:"):
                return None
            data = stripped[5:].strip()
            if not data:
                return None
            if self.sse_sentinel is not None and data == self.sse_sentinel:
                return END_OF_STREAM
            if data == "[DONE]":
                return None
        else:
            data = stripped
        try:
            record = json.loads(data)
        except json.JSONDecodeError:
            raise ParseError(self.name, data) from None
        if not isinstance(record, dict):
            raise ParseError(self.name, data)
        return record

    def _decode_document(self, body: bytes) -> dict:
        try:
            record = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise TransportError(self.name, "unparsable response envelope") from None
        if not isinstance(record, dict):
            raise TransportError(self.name, "unexpected response envelope")
        return record

    def _error_message(self, record: dict) -> Optional[str]:
        error = record.get("error")
        if error is None:
            return None
        if isinstance(error, dict):
            return str(error.get("message") or json.dumps(error))
        return str(error)

    def _check_record(self, record: dict) -> None:
        message = self._error_message(record)
        if message is not None:
            raise TransportError(self.name, message)

    async def records(self, request: StreamRequest) -> AsyncIterator[dict]:
        """
        Open the vendor stream and yield decoded JSON records in order.

        Malformed frames are skipped. Non-2xx responses, connection
        failures, unparsable documents and in-band error envelopes raise
        TransportError.
        """
        url = self._endpoint(request)
        payload = self._build_payload(request)
        framing = self.framing if self._is_streaming(request) else Framing.DOCUMENT
        logger.debug(f"{self.name}: POST {url} ({framing.value})")

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                async with client.stream(
                    "POST",
                    url,
                    headers=self._build_headers(),
                    json=payload,
                    timeout=HTTP_TIMEOUT_SECONDS,
                ) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise TransportError(
                            self.name,
                            f"HTTP {response.status_code}: {body[:ERROR_BODY_MAX_CHARS]}",
                            response.status_code,
                        )

                    if framing is Framing.DOCUMENT:
                        record = self._decode_document(await response.aread())
                        self._check_record(record)
                        yield record
                        return

                    async for line in response.aiter_lines():
                        try:
                            record = self._decode_line(line, framing)
                        except ParseError as e:
                            logger.debug(f"Skipping frame: {e}")
                            continue
                        if record is None:
                            continue
                        if record is END_OF_STREAM:
                            break
                        self._check_record(record)
                        yield record
        except httpx.HTTPError as e:
            raise TransportError(self.name, str(e) or e.__class__.__name__) from e

    async def stream(
        self,
        request: StreamRequest,
        accumulator: Optional[ToolCallAccumulator] = None,
    ) -> AsyncIterator[str]:
        """
        Stream text fragments for one round.

        Each decoded record is fed to the accumulator (if any) and projected
        to text in the same pass.

        Args:
            request: Round input
            accumulator: Tool-call accumulator observing the same records

        Yields:
            Non-empty text fragments in emission order
        """
        records = self.records(request)
        try:
            async for record in records:
                if self._config.debug_stream:
                    logger.debug(f"[{self.name}] {json.dumps(self.summarize(record), ensure_ascii=False)}")
                if accumulator is not None:
                    accumulator.feed(record)
                text = self.extract_text(record)
                if text:
                    yield text
        finally:
            await records.aclose()

    # Tool rounds

    def format_tools(self, tools: Sequence[ToolDefinition]) -> Any:
        return [tool.to_openai_format() for tool in tools]

    @abstractmethod
    def append_tool_round(
        self,
        messages: list,
        text: str,
        calls: Sequence[ToolCall],
        results: Sequence[ToolResult],
    ) -> None:
        """Append the assistant tool-call turn and the tool results in vendor shape."""
        pass

    def append_text_tool_round(
        self,
        messages: list,
        text: str,
        calls: Sequence[ToolCall],
        results: Sequence[ToolResult],
    ) -> None:
        """Tool results for in-text tool calls, re-injected as a user turn."""
        messages.append(self.text_message("assistant", text))
        blocks = "\n\n".join(
            f'Tool "{call.name}" result:\n{result.formatted}' for call, result in zip(calls, results)
        )
        prompt = TEXT_BLOCK_CONTINUATION.prompt_for(self._config)
        messages.append(self.text_message("user", f"{blocks}\n\n{prompt}"))

    def continuation_prompt(self) -> Optional[str]:
        if self.continuation is None:
            return None
        return self.continuation.prompt_for(self._config)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self._config.resolved_model})"
