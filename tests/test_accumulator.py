"""
Property-based tests for tool-call accumulation.

Argument JSON may arrive split at any byte boundary; the reassembled call
must not depend on where the splits fall.
"""

import json

import allure
import pytest
from hypothesis import given, settings, strategies as st

from llm_streamcore.accumulator import (
    Accumulating,
    AnthropicToolDecoder,
    ArgsFragment,
    AtomicCall,
    CallPhase,
    CallsClosed,
    CallStarted,
    Complete,
    GeminiToolDecoder,
    IDLE,
    OllamaToolDecoder,
    OpenAIToolDecoder,
    ToolCallAccumulator,
    advance,
    parse_arguments,
)


# Strategies

arg_keys = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=12)
arg_values = st.one_of(
    st.integers(min_value=-10**6, max_value=10**6),
    st.booleans(),
    st.none(),
    st.text(max_size=30),
    st.lists(st.integers(min_value=0, max_value=100), max_size=4),
)
arguments = st.dictionaries(arg_keys, arg_values, max_size=5)


@st.composite
def split_text(draw, text: str) -> list[str]:
    """Cut text into consecutive pieces at arbitrary positions."""
    cuts = sorted(draw(st.lists(st.integers(min_value=0, max_value=len(text)), max_size=8)))
    pieces, start = [], 0
    for cut in cuts:
        pieces.append(text[start:cut])
        start = cut
    pieces.append(text[start:])
    return pieces


@st.composite
def fragmented_arguments(draw):
    args = draw(arguments)
    raw = json.dumps(args, ensure_ascii=False)
    return args, draw(split_text(raw))


def openai_records(index: int, call_id: str, name: str, fragments: list[str]) -> list[dict]:
    head = {"index": index, "id": call_id, "type": "function", "function": {"name": name, "arguments": ""}}
    records = [{"choices": [{"delta": {"tool_calls": [head]}, "finish_reason": None}]}]
    for fragment in fragments:
        call = {"index": index, "function": {"arguments": fragment}}
        records.append({"choices": [{"delta": {"tool_calls": [call]}, "finish_reason": None}]})
    return records


OPENAI_STOP = {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]}


# **Feature: tool-call-accumulation, Property 1: Fragmentation invariance**
@allure.feature("Tool Call Accumulation")
@allure.story("Arguments reassemble regardless of split points")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100, deadline=None)
@given(case=fragmented_arguments())
def test_openai_fragmentation_invariance(case):
    """
    Property 1: Fragmentation invariance

    *For any* argument object and any split of its JSON text into
    fragments, the completed call carries exactly that object.

    **Validates: Tool-call accumulation, fragment concatenation**
    """
    args, fragments = case
    acc = ToolCallAccumulator(OpenAIToolDecoder(), provider="openai")
    for record in openai_records(0, "call_1", "read_file", fragments):
        acc.feed(record)
    acc.feed(OPENAI_STOP)

    calls = acc.complete_calls()
    assert len(calls) == 1
    assert calls[0].id == "call_1"
    assert calls[0].name == "read_file"
    assert calls[0].args == args
    assert calls[0].raw_args == ("".join(fragments) or None)
    assert acc.finish_reason == "tool_calls"
    assert acc.is_complete


# **Feature: tool-call-accumulation, Property 2: Interleaved indices stay separate**
@allure.feature("Tool Call Accumulation")
@allure.story("Interleaved call indices")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(first=fragmented_arguments(), second=fragmented_arguments(), order=st.randoms())
def test_interleaved_indices_reassemble_independently(first, second, order):
    """
    Property 2: Interleaved indices stay separate

    *For any* interleaving of fragments from two indices (keeping each
    index's own order), each call reassembles its own arguments and calls
    are reported in index order.

    **Validates: Tool-call accumulation, per-index buffers**
    """
    (args_a, frags_a), (args_b, frags_b) = first, second
    recs_a = openai_records(0, "a", "alpha", frags_a)
    recs_b = openai_records(1, "b", "beta", frags_b)

    merged = []
    while recs_a or recs_b:
        source = recs_a if recs_a and (not recs_b or order.random() < 0.5) else recs_b
        merged.append(source.pop(0))

    acc = ToolCallAccumulator(OpenAIToolDecoder())
    for record in merged:
        acc.feed(record)
    acc.feed(OPENAI_STOP)

    calls = acc.complete_calls()
    assert [c.name for c in calls] == ["alpha", "beta"]
    assert calls[0].args == args_a
    assert calls[1].args == args_b


# **Feature: tool-call-accumulation, Property 3: Exactly two lifecycle events per call**
@allure.feature("Tool Call Accumulation")
@allure.story("Observer sees phase changes only")
@allure.severity(allure.severity_level.NORMAL)
@settings(max_examples=100)
@given(case=fragmented_arguments())
def test_event_callback_fires_on_phase_changes(case):
    """
    Property 3: Exactly two lifecycle events per call

    A streamed call reports when it starts accumulating and when it
    completes, never once per fragment.

    **Validates: Tool-call accumulation, observer notifications**
    """
    _, fragments = case
    seen = []
    acc = ToolCallAccumulator(OpenAIToolDecoder(), on_event=seen.append)
    for record in openai_records(0, "call_1", "read_file", fragments):
        acc.feed(record)
    acc.feed(OPENAI_STOP)

    assert len(seen) == 2
    assert seen[0].raw_args is None or "".join(fragments).startswith(seen[0].raw_args)
    assert seen[-1].args == acc.complete_calls()[0].args


@allure.feature("Tool Call Accumulation")
@allure.story("Invalid argument JSON")
@allure.severity(allure.severity_level.NORMAL)
def test_invalid_json_completes_with_empty_args():
    acc = ToolCallAccumulator(OpenAIToolDecoder())
    for record in openai_records(0, "c", "read_file", ['{"path": ', "oops"]):
        acc.feed(record)
    acc.feed(OPENAI_STOP)

    calls = acc.complete_calls()
    assert calls[0].args == {}
    assert calls[0].raw_args == '{"path": oops'


@allure.feature("Tool Call Accumulation")
@allure.story("End of stream closes only stable buffers")
@allure.severity(allure.severity_level.CRITICAL)
def test_finish_closes_stable_and_drops_unstable_buffers():
    acc = ToolCallAccumulator(OpenAIToolDecoder())
    for record in openai_records(0, "stable", "read_file", ['{"path": "a.md"}']):
        acc.feed(record)
    for record in openai_records(1, "torn", "create_file", ['{"filename": "b']):
        acc.feed(record)

    acc.finish()

    calls = acc.complete_calls()
    assert [c.id for c in calls] == ["stable"]
    assert calls[0].args == {"path": "a.md"}
    assert isinstance(acc.state_of(1), Accumulating)
    assert acc.has_pending


@allure.feature("Tool Call Accumulation")
@allure.story("Complete is terminal")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("event", [
    ArgsFragment(index=0, text="more"),
    CallStarted(index=0, id="other", name="other"),
    CallsClosed(reason="stop"),
    AtomicCall(index=0, name="other", args={"x": 1}),
])
def test_complete_state_ignores_further_events(event):
    done = Complete(index=0, id="c", name="read_file", raw_args="{}", args={})
    assert advance(done, event) is done


@allure.feature("Tool Call Accumulation")
@allure.story("Transition table")
@allure.severity(allure.severity_level.NORMAL)
def test_advance_moves_idle_to_accumulating_to_complete():
    state = advance(IDLE, CallStarted(index=2, id="c", name="read_file"))
    assert state.phase is CallPhase.ACCUMULATING
    state = advance(state, ArgsFragment(index=2, text='{"path": "x"}'))
    state = advance(state, CallsClosed(reason="tool_calls"))
    assert state.phase is CallPhase.COMPLETE
    assert state.args == {"path": "x"}
    assert state.index == 2


@allure.feature("Tool Call Accumulation")
@allure.story("Argument normalization")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("raw,expected", [
    ({"a": 1}, {"a": 1}),
    ('{"a": 1}', {"a": 1}),
    ("[1, 2]", {}),
    ("not json", {}),
    ("   ", {}),
    (None, {}),
    (42, {}),
])
def test_parse_arguments(raw, expected):
    assert parse_arguments(raw) == expected


@allure.feature("Tool Call Accumulation")
@allure.story("Duplicate vendor ids are replaced")
@allure.severity(allure.severity_level.NORMAL)
def test_call_ids_unique_within_round():
    acc = ToolCallAccumulator(OpenAIToolDecoder(), provider="openai")
    for index in (0, 1):
        for record in openai_records(index, "dup", f"tool_{index}", ["{}"]):
            acc.feed(record)
    acc.feed(OPENAI_STOP)

    ids = [c.id for c in acc.complete_calls()]
    assert len(ids) == 2
    assert len(set(ids)) == 2
    assert "dup" in ids


# **Feature: tool-call-accumulation, Property 4: Anthropic input_json_delta reassembly**
@allure.feature("Tool Call Accumulation")
@allure.story("Anthropic content blocks")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(case=fragmented_arguments())
def test_anthropic_block_reassembly(case):
    """
    Property 4: Anthropic input_json_delta reassembly

    A tool_use block closes on its own content_block_stop, independent of
    the text block before it.

    **Validates: Tool-call accumulation, Anthropic decoder**
    """
    args, fragments = case
    records = [
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Reading."}},
        {"type": "content_block_stop", "index": 0},
        {"type": "content_block_start", "index": 1,
         "content_block": {"type": "tool_use", "id": "toolu_1", "name": "read_file", "input": {}}},
    ]
    records.extend(
        {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": f}}
        for f in fragments
    )
    records.append({"type": "content_block_stop", "index": 1})

    acc = ToolCallAccumulator(AnthropicToolDecoder(), provider="anthropic")
    for record in records:
        acc.feed(record)

    calls = acc.complete_calls()
    assert len(calls) == 1
    assert calls[0].id == "toolu_1"
    assert calls[0].args == args
    assert acc.state_of(0) is IDLE


@allure.feature("Tool Call Accumulation")
@allure.story("Anthropic stop reason")
@allure.severity(allure.severity_level.NORMAL)
def test_anthropic_message_delta_records_finish_reason():
    acc = ToolCallAccumulator(AnthropicToolDecoder())
    acc.feed({"type": "content_block_start", "index": 0,
              "content_block": {"type": "tool_use", "id": "t", "name": "list_files", "input": {}}})
    acc.feed({"type": "message_delta", "delta": {"stop_reason": "tool_use"}})

    assert acc.finish_reason == "tool_use"
    assert acc.complete_calls()[0].args == {}


@allure.feature("Tool Call Accumulation")
@allure.story("Whole calls from documents")
@allure.severity(allure.severity_level.CRITICAL)
def test_ollama_and_gemini_atomic_calls():
    ollama = ToolCallAccumulator(OllamaToolDecoder(), provider="ollama")
    ollama.feed({"message": {"role": "assistant", "content": "", "tool_calls": [
        {"function": {"name": "read_file", "arguments": {"path": "a.md"}}},
        {"function": {"name": "list_files", "arguments": '{"pattern": "*"}'}},
    ]}, "done": True})

    calls = ollama.complete_calls()
    assert [c.name for c in calls] == ["read_file", "list_files"]
    assert calls[0].args == {"path": "a.md"}
    assert calls[1].args == {"pattern": "*"}
    assert all(c.id.startswith("ollama-") for c in calls)

    gemini = ToolCallAccumulator(GeminiToolDecoder(), provider="gemini")
    gemini.feed({"candidates": [{"content": {"parts": [
        {"text": "Let me look."},
        {"functionCall": {"name": "read_file", "args": {"path": "b.md"}}},
    ]}}]})

    calls = gemini.complete_calls()
    assert len(calls) == 1
    assert calls[0].args == {"path": "b.md"}
    assert gemini.is_complete


@allure.feature("Tool Call Accumulation")
@allure.story("Records without tool content")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("decoder,record", [
    (OpenAIToolDecoder(), {"choices": []}),
    (OpenAIToolDecoder(), {"choices": [{"delta": {"content": "hi"}, "finish_reason": "stop"}]}),
    (AnthropicToolDecoder(), {"type": "ping"}),
    (OllamaToolDecoder(), {"message": {"content": "hi"}}),
    (GeminiToolDecoder(), {"candidates": [{"content": {"parts": [{"text": "hi"}]}}]}),
    (GeminiToolDecoder(), {"promptFeedback": {}}),
])
def test_decoders_ignore_plain_records(decoder, record):
    assert decoder.decode(record) == []
