"""
In-text tool-call parsing with a plugin architecture.

Used for vendors that do not get native tool calling: the model is asked
to write tool calls into its reply, and after the round the text is run
through every registered format parser. Where two syntaxes claim the same
span of text, the higher-priority parser keeps it.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class ParsedToolCall:
    """One tool call recovered from assistant text.

    Attributes:
        name: Tool name
        arguments: Argument object
        raw_text: The matched block, verbatim
        parser_name: Name of the FormatParser that matched
        start: Offset of raw_text in the parsed content
    """
    name: str
    arguments: dict[str, Any]
    raw_text: str
    parser_name: str
    start: int = 0

    @property
    def end(self) -> int:
        return self.start + len(self.raw_text)

    def overlaps(self, other: "ParsedToolCall") -> bool:
        return self.start < other.end and other.start < self.end


class FormatParser(ABC):
    """Recognizes one in-text tool-call syntax.

    Parsers are registered with ToolParser and tried in priority order.
    Implementations must not raise for malformed input; they skip it.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in ParsedToolCall.parser_name."""
        pass

    @property
    @abstractmethod
    def priority(self) -> int:
        """Lower values are tried first."""
        pass

    @abstractmethod
    def parse(self, content: str) -> list[ParsedToolCall]:
        """Find every call of this syntax in content.

        Args:
            content: Assistant text of one round

        Returns:
            Calls in order of appearance (empty when none match)
        """
        pass


def _strip_trailing_commas(raw: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", raw)


def payload_to_call(payload: Any) -> Optional[tuple[str, dict]]:
    """Read {"tool"|"name": ..., "arguments"|"args"|"input": {...}} into (name, args)."""
    if not isinstance(payload, dict):
        return None
    name = payload.get("tool", payload.get("name"))
    if not isinstance(name, str) or not name.strip():
        return None
    args = payload.get("arguments", payload.get("args", payload.get("input")))
    if isinstance(args, str):
        try:
            args = json.loads(args)
        except json.JSONDecodeError:
            args = {}
    if not isinstance(args, dict):
        args = {}
    return name.strip(), args


class FencedBlockParser(FormatParser):
    """Parses ```tool_call fenced blocks holding one JSON object.

    Example:
        ```tool_call
        {"tool": "read_file", "arguments": {"path": "notes.md"}}
        ```
    """

    _BLOCK_PATTERN = re.compile(r"```tool_call\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)

    @property
    def name(self) -> str:
        return "fenced"

    @property
    def priority(self) -> int:
        return 1

    def parse(self, content: str) -> list[ParsedToolCall]:
        results: list[ParsedToolCall] = []
        for match in self._BLOCK_PATTERN.finditer(content):
            raw_json = _strip_trailing_commas(match.group(1).strip())
            try:
                payload = json.loads(raw_json)
            except json.JSONDecodeError:
                continue
            call = payload_to_call(payload)
            if call is None:
                continue
            results.append(ParsedToolCall(
                name=call[0],
                arguments=call[1],
                raw_text=match.group(0),
                parser_name=self.name,
                start=match.start(),
            ))
        return results


class InvokeXMLParser(FormatParser):
    """Parses <invoke name="..."><parameter name="...">value</parameter></invoke>.

    Accepts an optional <tool_call> or <minimax:tool_call> wrapper, which
    some Anthropic-compatible endpoints emit instead of native tool blocks.
    """

    _INVOKE_PATTERN = re.compile(
        r'<invoke\s+name\s*=\s*["\']([^"\']+)["\']\s*>(.*?)</invoke>',
        re.DOTALL | re.IGNORECASE,
    )
    _PARAMETER_PATTERN = re.compile(
        r'<parameter\s+name\s*=\s*["\']([^"\']+)["\']\s*>(.*?)</parameter>',
        re.DOTALL | re.IGNORECASE,
    )

    @property
    def name(self) -> str:
        return "xml"

    @property
    def priority(self) -> int:
        return 10

    def parse(self, content: str) -> list[ParsedToolCall]:
        results: list[ParsedToolCall] = []
        for match in self._INVOKE_PATTERN.finditer(content):
            tool_name = match.group(1).strip()
            if not tool_name:
                continue
            results.append(ParsedToolCall(
                name=tool_name,
                arguments=self._parse_parameters(match.group(2)),
                raw_text=match.group(0),
                parser_name=self.name,
                start=match.start(),
            ))
        return results

    def _parse_parameters(self, params_content: str) -> dict[str, Any]:
        arguments: dict[str, Any] = {}
        for param_name, value in self._PARAMETER_PATTERN.findall(params_content):
            arguments[param_name] = value.strip()
        if arguments:
            return arguments
        try:
            parsed = json.loads(params_content.strip())
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}


class TaggedJSONParser(FormatParser):
    """Parses <tool_call>{"tool": ..., "arguments": ...}</tool_call>."""

    _TAG_PATTERN = re.compile(
        r"<(?:minimax:)?tool_call>\s*(\{.*?\})\s*</(?:minimax:)?tool_call>",
        re.DOTALL | re.IGNORECASE,
    )

    @property
    def name(self) -> str:
        return "tagged_json"

    @property
    def priority(self) -> int:
        return 20

    def parse(self, content: str) -> list[ParsedToolCall]:
        results: list[ParsedToolCall] = []
        for match in self._TAG_PATTERN.finditer(content):
            try:
                payload = json.loads(_strip_trailing_commas(match.group(1)))
            except json.JSONDecodeError:
                continue
            call = payload_to_call(payload)
            if call is None:
                continue
            results.append(ParsedToolCall(
                name=call[0],
                arguments=call[1],
                raw_text=match.group(0),
                parser_name=self.name,
                start=match.start(),
            ))
        return results


class BareJSONParser(FormatParser):
    """Parses a bare {"tool": ..., "arguments": ...} object written in prose.

    Tried last, so objects inside fenced blocks or tags belong to those
    parsers.
    """

    _START_PATTERN = re.compile(r'\{\s*"tool"\s*:')
    _decoder = json.JSONDecoder()

    @property
    def name(self) -> str:
        return "bare_json"

    @property
    def priority(self) -> int:
        return 30

    def parse(self, content: str) -> list[ParsedToolCall]:
        results: list[ParsedToolCall] = []
        consumed = 0
        for match in self._START_PATTERN.finditer(content):
            if match.start() < consumed:
                continue
            try:
                payload, end = self._decoder.raw_decode(content, match.start())
            except json.JSONDecodeError:
                continue
            call = payload_to_call(payload)
            if call is None:
                continue
            results.append(ParsedToolCall(
                name=call[0],
                arguments=call[1],
                raw_text=content[match.start():end],
                parser_name=self.name,
                start=match.start(),
            ))
            consumed = end
        return results


class ToolParser:
    """Runs every registered FormatParser and merges their calls.

    Parsers run in priority order; a call whose span overlaps one already
    accepted is dropped. Results are sorted by position. A parser that
    raises contributes nothing.

    Example:
        parser = create_default_parser()
        for call in parser.parse(model_output):
            print(call.name, call.arguments)
    """

    def __init__(self) -> None:
        self._parsers: list[FormatParser] = []

    def register(self, parser: FormatParser) -> None:
        self._parsers.append(parser)
        self._parsers.sort(key=lambda p: p.priority)

    def parse(self, content: str) -> list[ParsedToolCall]:
        if not content:
            return []

        accepted: list[ParsedToolCall] = []
        for parser in self._parsers:
            try:
                calls = parser.parse(content)
            except Exception as e:
                logger.debug(f"Parser {parser.name} failed: {e}")
                continue
            for call in calls:
                if any(call.overlaps(other) for other in accepted):
                    continue
                accepted.append(call)

        return sorted(accepted, key=lambda c: c.start)

    @property
    def parsers(self) -> list[FormatParser]:
        return list(self._parsers)


def create_default_parser() -> ToolParser:
    parser = ToolParser()
    parser.register(FencedBlockParser())
    parser.register(InvokeXMLParser())
    parser.register(TaggedJSONParser())
    parser.register(BareJSONParser())
    return parser
