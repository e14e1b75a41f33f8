"""
Tool-call accumulation over a decoded vendor stream.

Each call index moves through IDLE -> ACCUMULATING -> COMPLETE. States are
immutable values and advance() is the only transition function; the
ToolCallAccumulator keeps one state per index and mirrors it into a
ToolCall record that lives for the rest of the exchange.

Vendor decoders turn one decoded record into zero or more accumulator
events. Vendors that stream argument fragments (OpenAI, Anthropic) emit
CallStarted/ArgsFragment/CallsClosed; vendors that deliver whole calls
(Ollama and Gemini documents, in-text tool blocks) emit AtomicCall.
"""
import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Union

from .models import ToolCall, ToolEventCallback

logger = logging.getLogger(__name__)

OPENAI_TOOL_STOP_REASONS = frozenset({"tool_calls", "tool_call", "function_call"})
ANTHROPIC_TOOL_STOP_REASONS = frozenset({"tool_use", "tool_calls", "tool_call"})


class CallPhase(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Idle:
    phase: CallPhase = field(default=CallPhase.IDLE, init=False)


@dataclass(frozen=True)
class Accumulating:
    index: int
    id: str = ""
    name: str = ""
    fragments: tuple = ()
    phase: CallPhase = field(default=CallPhase.ACCUMULATING, init=False)

    @property
    def buffer(self) -> str:
        return "".join(self.fragments)


@dataclass(frozen=True)
class Complete:
    index: int
    id: str
    name: str
    raw_args: str
    args: dict
    phase: CallPhase = field(default=CallPhase.COMPLETE, init=False)


CallState = Union[Idle, Accumulating, Complete]

IDLE = Idle()


@dataclass(frozen=True)
class CallStarted:
    """A call header: id and/or name for an index, optionally with initial arguments."""
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    initial_args: str = ""


@dataclass(frozen=True)
class ArgsFragment:
    index: int
    text: str


@dataclass(frozen=True)
class CallsClosed:
    """Vendor closed its tool calls. index=None closes every open call."""
    reason: Optional[str] = None
    index: Optional[int] = None


@dataclass(frozen=True)
class AtomicCall:
    index: int
    name: str
    args: Any = None
    id: Optional[str] = None


AccumulatorEvent = Union[CallStarted, ArgsFragment, CallsClosed, AtomicCall]


def parse_arguments(raw: Any) -> dict:
    """
    Normalize tool arguments to a dict.

    Strings are parsed as JSON; anything that is not a JSON object
    (including invalid JSON) becomes an empty dict.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def _close(state: Accumulating) -> Complete:
    raw = state.buffer
    return Complete(
        index=state.index,
        id=state.id,
        name=state.name,
        raw_args=raw,
        args=parse_arguments(raw),
    )


def advance(state: CallState, event: AccumulatorEvent) -> CallState:
    """
    Transition function for a single call index.

    COMPLETE is terminal: any further event returns the state unchanged.
    """
    if isinstance(state, Complete):
        return state

    if isinstance(event, AtomicCall):
        if isinstance(state, Accumulating):
            return state
        raw = event.args if isinstance(event.args, str) else json.dumps(event.args or {}, ensure_ascii=False)
        return Complete(
            index=event.index,
            id=event.id or "",
            name=event.name,
            raw_args=raw,
            args=parse_arguments(event.args),
        )

    if isinstance(event, CallStarted):
        if isinstance(state, Idle):
            fragments = (event.initial_args,) if event.initial_args else ()
            return Accumulating(
                index=event.index,
                id=event.id or "",
                name=event.name or "",
                fragments=fragments,
            )
        fragments = state.fragments
        if event.initial_args and not fragments:
            fragments = (event.initial_args,)
        return replace(
            state,
            id=event.id or state.id,
            name=event.name or state.name,
            fragments=fragments,
        )

    if isinstance(event, ArgsFragment):
        if isinstance(state, Idle):
            return Accumulating(index=event.index, fragments=(event.text,))
        return replace(state, fragments=state.fragments + (event.text,))

    if isinstance(event, CallsClosed):
        if isinstance(state, Accumulating):
            return _close(state)
        return state

    raise TypeError(f"Unknown accumulator event: {event!r}")


class ToolDecoder:
    """Base vendor decoder: maps one record to accumulator events."""

    def decode(self, record: dict) -> list:
        return []


class OpenAIToolDecoder(ToolDecoder):
    """choices[0].delta.tool_calls fragments closed by a tool finish_reason."""

    def decode(self, record: dict) -> list:
        choices = record.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return []
        choice = choices[0]
        events: list = []

        delta = choice.get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("tool_calls"), list):
            for position, call in enumerate(delta["tool_calls"]):
                if not isinstance(call, dict):
                    continue
                index = call.get("index")
                if not isinstance(index, int):
                    index = position
                function = call.get("function") if isinstance(call.get("function"), dict) else {}
                call_id = call.get("id") if isinstance(call.get("id"), str) else None
                name = function.get("name") if isinstance(function.get("name"), str) else None
                if call_id or name:
                    events.append(CallStarted(index=index, id=call_id, name=name))
                arguments = function.get("arguments")
                if isinstance(arguments, str) and arguments:
                    events.append(ArgsFragment(index=index, text=arguments))

        reason = choice.get("finish_reason")
        if isinstance(reason, str) and reason in OPENAI_TOOL_STOP_REASONS:
            events.append(CallsClosed(reason=reason))
        return events


class AnthropicToolDecoder(ToolDecoder):
    """Typed SSE events: tool_use block starts, input_json_delta fragments, stop signals."""

    def decode(self, record: dict) -> list:
        event_type = record.get("type")
        index = record.get("index") if isinstance(record.get("index"), int) else 0

        if event_type == "content_block_start":
            block = record.get("content_block")
            if not isinstance(block, dict) or block.get("type") != "tool_use":
                return []
            initial = block.get("input")
            if isinstance(initial, dict):
                initial = json.dumps(initial, ensure_ascii=False) if initial else ""
            elif not isinstance(initial, str):
                initial = ""
            return [CallStarted(
                index=index,
                id=block.get("id") if isinstance(block.get("id"), str) else None,
                name=block.get("name") if isinstance(block.get("name"), str) else None,
                initial_args=initial,
            )]

        if event_type == "content_block_delta":
            delta = record.get("delta")
            if (
                isinstance(delta, dict)
                and delta.get("type") == "input_json_delta"
                and isinstance(delta.get("partial_json"), str)
            ):
                return [ArgsFragment(index=index, text=delta["partial_json"])]
            return []

        if event_type == "content_block_stop":
            return [CallsClosed(reason="content_block_stop", index=index)]

        if event_type == "message_delta":
            delta = record.get("delta")
            reason = delta.get("stop_reason") if isinstance(delta, dict) else None
            if isinstance(reason, str) and reason in ANTHROPIC_TOOL_STOP_REASONS:
                return [CallsClosed(reason=reason)]
            return []

        if event_type == "message_stop":
            reason = record.get("stop_reason")
            return [CallsClosed(reason=reason if isinstance(reason, str) else "message_stop")]

        return []


class OllamaToolDecoder(ToolDecoder):
    """message.tool_calls delivered whole in a single document."""

    def decode(self, record: dict) -> list:
        message = record.get("message")
        if not isinstance(message, dict) or not isinstance(message.get("tool_calls"), list):
            return []
        events = []
        for index, call in enumerate(message["tool_calls"]):
            if not isinstance(call, dict) or not isinstance(call.get("function"), dict):
                continue
            name = call["function"].get("name")
            if not isinstance(name, str) or not name:
                continue
            events.append(AtomicCall(
                index=index,
                name=name,
                args=call["function"].get("arguments"),
                id=call.get("id") if isinstance(call.get("id"), str) else None,
            ))
        return events


class GeminiToolDecoder(ToolDecoder):
    """functionCall parts of candidates[0].content."""

    def decode(self, record: dict) -> list:
        candidates = record.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return []
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return []
        events = []
        for part in parts:
            if not isinstance(part, dict) or not isinstance(part.get("functionCall"), dict):
                continue
            call = part["functionCall"]
            name = call.get("name")
            if not isinstance(name, str) or not name:
                continue
            events.append(AtomicCall(
                index=len(events),
                name=name,
                args=call.get("args"),
                id=call.get("id") if isinstance(call.get("id"), str) else None,
            ))
        return events


class ToolCallAccumulator:
    """
    Reassembles tool calls for one round.

    Holds the per-round StreamingAdapterState: a map of call buffers keyed
    by index, the last finish reason and a completion flag. A fresh
    accumulator is created for every round.

    Example:
        acc = ToolCallAccumulator(OpenAIToolDecoder(), provider="openai")
        for record in records:
            acc.feed(record)
        calls = acc.complete_calls()
    """

    def __init__(
        self,
        decoder: Optional[ToolDecoder] = None,
        on_event: Optional[ToolEventCallback] = None,
        provider: str = "",
        id_factory: Optional[Callable[[str, int], str]] = None,
    ) -> None:
        self._decoder = decoder or ToolDecoder()
        self._on_event = on_event
        self._provider = provider
        self._id_factory = id_factory or _default_call_id
        self._states: dict[int, CallState] = {}
        self._calls: dict[int, ToolCall] = {}
        self._used_ids: set[str] = set()
        self.finish_reason: Optional[str] = None
        self.is_complete = False

    def feed(self, record: dict) -> None:
        """Run one decoded record through the vendor decoder."""
        for event in self._decoder.decode(record):
            self.apply(event)

    def apply(self, event: AccumulatorEvent) -> None:
        if isinstance(event, CallsClosed):
            if event.reason and event.index is None:
                self.finish_reason = event.reason
            targets = list(self._states) if event.index is None else [event.index]
            for index in targets:
                if index in self._states:
                    self._step(index, event)
            if event.index is None and any(
                isinstance(s, Complete) for s in self._states.values()
            ):
                self.is_complete = True
            return
        self._step(event.index, event)
        if isinstance(event, AtomicCall):
            self.is_complete = True

    def finish(self) -> None:
        """
        End of stream without an explicit close.

        Buffers whose text already parses as a JSON object (or is empty)
        are treated as stable and closed; anything else stays open and is
        never exposed.
        """
        for index, state in list(self._states.items()):
            if not isinstance(state, Accumulating):
                continue
            raw = state.buffer
            if raw.strip():
                try:
                    stable = isinstance(json.loads(raw), dict)
                except json.JSONDecodeError:
                    stable = False
            else:
                stable = True
            if stable:
                self._step(index, CallsClosed(reason="end_of_stream", index=index))
            else:
                logger.debug(f"Dropping unterminated tool call at index {index}")

    def _step(self, index: int, event: AccumulatorEvent) -> None:
        previous = self._states.get(index, IDLE)
        current = advance(previous, event)
        if current is previous:
            return
        self._states[index] = current
        call = self._sync_call(index, current)
        if current.phase != previous.phase and self._on_event is not None:
            self._on_event(call.snapshot())

    def _sync_call(self, index: int, state: CallState) -> ToolCall:
        call = self._calls.get(index)
        if call is None:
            call = ToolCall(id="", name="", provider=self._provider or None)
            self._calls[index] = call
        if state.id and state.id != call.id and state.id not in self._used_ids:
            self._used_ids.discard(call.id)
            call.id = state.id
            self._used_ids.add(call.id)
        if not call.id:
            call.id = self._unique_id(index)
        call.name = state.name
        if isinstance(state, Accumulating):
            call.raw_args = state.buffer or None
        elif isinstance(state, Complete):
            call.raw_args = state.raw_args or None
            call.args = dict(state.args)
        return call

    def _unique_id(self, index: int) -> str:
        candidate = self._id_factory(self._provider or "tool", index)
        while candidate in self._used_ids:
            candidate = self._id_factory(self._provider or "tool", index)
        self._used_ids.add(candidate)
        return candidate

    def state_of(self, index: int) -> CallState:
        return self._states.get(index, IDLE)

    @property
    def has_pending(self) -> bool:
        return any(isinstance(s, Accumulating) for s in self._states.values())

    def complete_calls(self) -> list[ToolCall]:
        """Completed calls with a name, in declaration (index) order."""
        calls = []
        for index in sorted(self._states):
            state = self._states[index]
            if isinstance(state, Complete) and state.name:
                calls.append(self._calls[index])
        return calls


def _default_call_id(provider: str, index: int) -> str:
    return f"{provider}-{index}-{uuid.uuid4().hex[:8]}"
