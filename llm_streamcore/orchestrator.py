"""
Orchestration loop for one exchange.

An exchange runs rounds until the model answers without tool calls,
emits the completion marker, or a limit is hit:

    STREAMING_ROUND -> TOOL_CALLS_DETECTED -> EXECUTING_TOOLS -> STREAMING_ROUND
                    -> DONE | TIMEOUT | ERROR | CANCELLED

Each round's stream is consumed by a single producer task. Every wait on
it, and every tool execution, races the round/exchange deadline and the
abort signal; losing the race cancels the producer or the tool, so
timeouts and explicit aborts share one cancellation path.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence

from .accumulator import AtomicCall, ToolCallAccumulator
from .completion_detector import CompletionDetector, CompletionMarkerFilter
from .config import ExchangeSettings
from .errors import TransportError
from .iteration_controller import IterationController
from .llm.base import StreamAdapter, StreamRequest
from .models import Message, NoteFile, Role, ToolCall, ToolEventCallback, ToolMode, ToolResult
from .prompts import build_system_instruction, build_user_prompt, select_history, with_omission_notice
from .tools.catalog import ToolDefinition
from .tools.executor import ToolExecutor, resolve_fallback_args
from .tools.parser import ToolParser, create_default_parser
from .tools.registry import ToolCallback, ToolRegistry

logger = logging.getLogger(__name__)


class ExchangeState(str, Enum):
    STREAMING_ROUND = "streaming_round"
    TOOL_CALLS_DETECTED = "tool_calls_detected"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    TIMEOUT = "timeout"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExchangeState.DONE,
            ExchangeState.TIMEOUT,
            ExchangeState.ERROR,
            ExchangeState.CANCELLED,
        )


NOTICES = {
    "en": {
        "round_timeout": "⚠️ **Warning**: This round timed out ({seconds} seconds) and was ended automatically.",
        "exchange_timeout": "⚠️ **Warning**: The response timed out ({seconds} seconds). Partial output is shown above.",
        "error": "❌ **Error**: {message}",
    },
    "zh": {
        "round_timeout": "⚠️ **警告**: 本轮响应超时（{seconds}秒），已自动结束。",
        "exchange_timeout": "⚠️ **警告**: 响应超时（{seconds}秒），以上为已生成的部分内容。",
        "error": "❌ **错误**: {message}",
    },
}


def _notice(language: str, key: str, **values: Any) -> str:
    templates = NOTICES.get(language, NOTICES["en"])
    return templates[key].format(**values)


def _seconds(value: float) -> str:
    return f"{value:g}"


@dataclass
class ExchangeResult:
    """
    Outcome of one exchange.

    Attributes:
        text: Everything shown to the caller, notices included
        state: Terminal state of the loop
        rounds: Number of rounds started
        tool_calls: Calls that were executed, in execution order
        messages: Vendor-shaped message list as last sent or extended
        notice: Trailing notice (timeout, round budget, transport error)
        message: The finalized assistant Message
    """
    text: str = ""
    state: ExchangeState = ExchangeState.STREAMING_ROUND
    rounds: int = 0
    tool_calls: list[ToolCall] = field(default_factory=list)
    messages: list = field(default_factory=list)
    notice: Optional[str] = None
    message: Optional[Message] = None


class _Outcome(Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    ABORTED = "aborted"


class _EndOfRound:
    pass


_END = _EndOfRound()


@dataclass
class _Failure:
    error: BaseException


async def _pump(stream: AsyncIterator[str], queue: asyncio.Queue) -> None:
    """Producer: move one round's fragments into the queue, then an end or failure marker."""
    try:
        async for fragment in stream:
            queue.put_nowait(fragment)
    except Exception as e:
        queue.put_nowait(_Failure(e))
        return
    queue.put_nowait(_END)


class Orchestrator:
    """
    Runs exchanges against one adapter with one tool set.

    Example:
        registry, workspace = create_builtin_registry(files)
        orchestrator = Orchestrator.from_registry(adapter, registry)
        async for fragment in orchestrator.exchange("read notes.md"):
            print(fragment, end="")
    """

    def __init__(
        self,
        adapter: StreamAdapter,
        settings: Optional[ExchangeSettings] = None,
        tools: Sequence[ToolDefinition] = (),
        tool_callback: Optional[ToolCallback] = None,
        on_tool_event: Optional[ToolEventCallback] = None,
        base_instruction: str = "",
        is_internal: Optional[Callable[[str], bool]] = None,
        parser: Optional[ToolParser] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            adapter: Vendor stream adapter
            settings: Timeouts and limits (defaults if omitted)
            tools: Tool definitions offered to the model
            tool_callback: Executes a tool by name; without it no tools are offered
            on_tool_event: Receives a ToolCall snapshot on every status change
            base_instruction: Host system instruction
            is_internal: Classifies tool names for result formatting
            parser: Parser for in-text tool-call blocks
        """
        self.adapter = adapter
        self.settings = settings or ExchangeSettings()
        self.tools = list(tools)
        self.tool_callback = tool_callback
        self.on_tool_event = on_tool_event
        self.base_instruction = base_instruction
        self.is_internal = is_internal
        self.parser = parser or create_default_parser()

    @classmethod
    def from_registry(
        cls,
        adapter: StreamAdapter,
        registry: ToolRegistry,
        **kwargs: Any,
    ) -> "Orchestrator":
        """Use a ToolRegistry for tool definitions, execution and classification."""
        return cls(
            adapter,
            tools=registry.definitions(),
            tool_callback=registry.call,
            is_internal=registry.is_internal,
            **kwargs,
        )

    def exchange(
        self,
        prompt: str,
        history: Sequence[Message] = (),
        context_files: Sequence[NoteFile] = (),
        retrieved_context: Optional[str] = None,
    ) -> "Exchange":
        """Create an exchange; iterate it to stream text."""
        return Exchange(self, prompt, history, context_files, retrieved_context)

    async def run(self, prompt: str, **kwargs: Any) -> ExchangeResult:
        """Run an exchange to completion and return its result."""
        return await self.exchange(prompt, **kwargs).collect()


class Exchange:
    """
    One prompt's multi-round exchange.

    Iterating yields text fragments in emission order. cancel() may be
    called at any time, including from another task; already streamed
    text is kept and no further round starts.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        prompt: str,
        history: Sequence[Message],
        context_files: Sequence[NoteFile],
        retrieved_context: Optional[str],
    ) -> None:
        self._orchestrator = orchestrator
        self._prompt = prompt
        self._history = list(history)
        self._context_files = list(context_files)
        self._retrieved_context = retrieved_context
        self._cancel_requested = False
        self._abort: Optional[asyncio.Event] = None
        self._producer: Optional[asyncio.Task] = None
        self._started = False
        self._assistant = Message(role=Role.ASSISTANT)
        self.result = ExchangeResult(message=self._assistant)

    @property
    def state(self) -> ExchangeState:
        return self.result.state

    def cancel(self) -> None:
        """Abort the exchange: in-flight reads and tools are cancelled."""
        self._cancel_requested = True
        if self._abort is not None:
            self._abort.set()

    def __aiter__(self) -> AsyncIterator[str]:
        return self._run()

    async def collect(self) -> ExchangeResult:
        async for _ in self:
            pass
        return self.result

    # Racing

    async def _race(self, awaitable: Awaitable, deadline: float) -> tuple:
        """
        Await awaitable unless the deadline passes or the exchange is aborted.

        Returns:
            (_Outcome.OK, value) or (_Outcome.TIMEOUT | _Outcome.ABORTED, None);
            the losing awaitable is cancelled before returning
        """
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(awaitable)
        abort_wait = asyncio.ensure_future(self._abort.wait())
        try:
            done, _ = await asyncio.wait(
                {task, abort_wait},
                timeout=max(0.0, deadline - loop.time()),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            task.cancel()
            raise
        finally:
            abort_wait.cancel()

        if task in done:
            return _Outcome.OK, task.result()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if self._abort.is_set():
            return _Outcome.ABORTED, None
        return _Outcome.TIMEOUT, None

    async def _stop_producer(self) -> None:
        producer, self._producer = self._producer, None
        if producer is not None and not producer.done():
            producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    # Output

    def _emit(self, text: str) -> str:
        self._assistant.append(text)
        return text

    def _emit_notice(self, notice: str) -> str:
        self.result.notice = notice
        prefix = "\n\n" if self._assistant.content else ""
        return self._emit(f"{prefix}{notice}")

    def _report(self, call: ToolCall) -> None:
        callback = self._orchestrator.on_tool_event
        if callback is not None:
            callback(call.snapshot())

    # Loop

    async def _run(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("An exchange can only be iterated once")
        self._started = True

        orchestrator = self._orchestrator
        adapter = orchestrator.adapter
        settings = orchestrator.settings
        config = adapter.config
        language = config.language
        result = self.result

        loop = asyncio.get_running_loop()
        self._abort = asyncio.Event()
        if self._cancel_requested:
            self._abort.set()
        exchange_deadline = loop.time() + settings.exchange_timeout

        executor: Optional[ToolExecutor] = None
        tools: list[ToolDefinition] = []
        if orchestrator.tool_callback is not None and orchestrator.tools:
            executor = ToolExecutor(
                orchestrator.tool_callback,
                max_chars=settings.tool_result_max_chars,
                is_internal=orchestrator.is_internal,
            )
            tools = orchestrator.tools
        mode = adapter.tool_mode(tools)
        native_tools = tools if mode is ToolMode.NATIVE else []

        marker_filter = CompletionMarkerFilter(enabled=adapter.uses_completion_marker(mode))
        system_instruction = build_system_instruction(
            orchestrator.base_instruction,
            tools=tools,
            tool_mode=mode,
            language=language,
            completion_marker=marker_filter.enabled,
        )
        user_prompt = build_user_prompt(
            self._prompt,
            config.provider,
            context_files=self._context_files,
            retrieved_context=self._retrieved_context,
        )
        selection = select_history(
            self._history,
            settings.history_limit,
            config.resolved_context_limit,
            config.resolved_output_limit,
            system_instruction=system_instruction,
            prompt=user_prompt,
        )
        user_prompt = with_omission_notice(user_prompt, selection.omitted, language)
        messages = adapter.initial_messages(StreamRequest(
            prompt=user_prompt,
            system_instruction=system_instruction,
            history=selection.messages,
        ))
        result.messages = messages

        controller = IterationController(settings.max_rounds, language)
        detector = CompletionDetector()

        try:
            while True:
                if self._abort.is_set():
                    result.state = ExchangeState.CANCELLED
                    break
                if loop.time() >= exchange_deadline:
                    result.state = ExchangeState.TIMEOUT
                    yield self._emit_notice(_notice(
                        language, "exchange_timeout", seconds=_seconds(settings.exchange_timeout)
                    ))
                    break

                controller.on_round_start()
                result.rounds = controller.current_round
                result.state = ExchangeState.STREAMING_ROUND
                logger.debug(f"Round {result.rounds} ({adapter.name}, tools={mode.value})")

                accumulator = adapter.new_accumulator(on_event=orchestrator.on_tool_event)
                request = StreamRequest(
                    system_instruction=system_instruction,
                    tools=native_tools,
                    messages=list(messages),
                )
                queue: asyncio.Queue = asyncio.Queue()
                self._producer = asyncio.ensure_future(_pump(adapter.stream(request, accumulator), queue))

                round_deadline = min(loop.time() + settings.round_timeout, exchange_deadline)
                round_parts: list[str] = []
                outcome = _Outcome.OK
                while True:
                    outcome, item = await self._race(queue.get(), round_deadline)
                    if outcome is not _Outcome.OK or item is _END:
                        break
                    if isinstance(item, _Failure):
                        raise item.error
                    round_parts.append(item)
                    visible = marker_filter.feed(item)
                    if visible:
                        yield self._emit(visible)
                await self._stop_producer()

                tail = marker_filter.flush()
                if tail:
                    yield self._emit(tail)
                round_text = "".join(round_parts).replace(marker_filter.marker, "")

                if outcome is _Outcome.ABORTED:
                    logger.info(f"Exchange cancelled in round {result.rounds}")
                    result.state = ExchangeState.CANCELLED
                    break

                if outcome is _Outcome.OK:
                    accumulator.finish()
                    if mode is ToolMode.TEXT_BLOCK:
                        self._apply_text_blocks(accumulator, round_text)

                calls = accumulator.complete_calls() if executor is not None else []

                if outcome is _Outcome.TIMEOUT:
                    if round_deadline >= exchange_deadline:
                        logger.info(f"Exchange timed out after {result.rounds} rounds")
                        result.state = ExchangeState.TIMEOUT
                        yield self._emit_notice(_notice(
                            language, "exchange_timeout", seconds=_seconds(settings.exchange_timeout)
                        ))
                        break
                    if not calls:
                        logger.info(f"Round {result.rounds} timed out")
                        result.state = ExchangeState.TIMEOUT
                        yield self._emit_notice(_notice(
                            language, "round_timeout", seconds=_seconds(settings.round_timeout)
                        ))
                        break
                    logger.info(f"Round {result.rounds} timed out with {len(calls)} complete tool calls")

                verdict = detector.evaluate(marker_filter.seen, bool(calls))
                logger.debug(f"Round {result.rounds}: {detector.describe(verdict)}")
                if not verdict.should_continue:
                    result.state = ExchangeState.DONE
                    break

                result.state = ExchangeState.TOOL_CALLS_DETECTED
                logger.info(f"Round {result.rounds}: {len(calls)} tool calls ({', '.join(c.name for c in calls)})")

                result.state = ExchangeState.EXECUTING_TOOLS
                context_text = f"{self._prompt}\n{self._assistant.content}"
                outcome, results = await self._execute_calls(executor, calls, context_text, exchange_deadline)
                if outcome is _Outcome.ABORTED:
                    result.state = ExchangeState.CANCELLED
                    break
                if outcome is _Outcome.TIMEOUT:
                    result.state = ExchangeState.TIMEOUT
                    yield self._emit_notice(_notice(
                        language, "exchange_timeout", seconds=_seconds(settings.exchange_timeout)
                    ))
                    break

                if mode is ToolMode.TEXT_BLOCK:
                    adapter.append_text_tool_round(messages, round_text, calls, results)
                else:
                    adapter.append_tool_round(messages, round_text, calls, results)

                if not controller.should_continue(verdict):
                    result.state = ExchangeState.DONE
                    yield self._emit_notice(controller.on_max_rounds_reached())
                    break
        except TransportError as e:
            logger.warning(f"Exchange failed: {e}")
            result.state = ExchangeState.ERROR
            yield self._emit_notice(_notice(language, "error", message=str(e)))
            raise
        except Exception:
            result.state = ExchangeState.ERROR
            raise
        finally:
            producer, self._producer = self._producer, None
            if producer is not None and not producer.done():
                producer.cancel()
            if not self._assistant.finalized:
                self._assistant.finalize()
            result.text = self._assistant.content
            logger.debug(f"Exchange finished: {result.state.value} after {result.rounds} rounds")

    def _apply_text_blocks(self, accumulator: ToolCallAccumulator, text: str) -> None:
        for index, parsed in enumerate(self._orchestrator.parser.parse(text)):
            accumulator.apply(AtomicCall(index=index, name=parsed.name, args=parsed.arguments))

    async def _execute_calls(
        self,
        executor: ToolExecutor,
        calls: Sequence[ToolCall],
        context_text: str,
        deadline: float,
    ) -> tuple:
        """
        Execute calls one at a time in declaration order.

        Returns:
            (_Outcome, results); on timeout or abort the running call is
            marked failed and results holds only the finished calls
        """
        results: list[ToolResult] = []
        for call in calls:
            args = resolve_fallback_args(call.name, call.args, context_text)
            if args is not call.args:
                call.args = args
                call.raw_args = json.dumps(args, ensure_ascii=False)

            call.start()
            self.result.tool_calls.append(call)
            self._report(call)

            outcome, tool_result = await self._race(executor.execute(call.name, call.args), deadline)
            if outcome is not _Outcome.OK:
                call.fail("Cancelled" if outcome is _Outcome.ABORTED else "Timed out")
                self._report(call)
                return outcome, results

            if tool_result.success:
                call.succeed(tool_result.result)
            else:
                call.fail(tool_result.error_message or "Unknown error", tool_result.result)
            self._report(call)
            results.append(tool_result)
        return _Outcome.OK, results
