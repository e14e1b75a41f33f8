"""
Tests for the command line entry point.
"""

import allure
import httpx
import pytest

import llm_streamcore.config as config_module
import llm_streamcore.llm as llm_module
from llm_streamcore.config import ConfigManager
from llm_streamcore.main import load_note_files, main, parse_args, tool_status_line
from llm_streamcore.models import ToolCall, ToolCallStatus
from tests.wire import ScriptedTransport, ollama_body

real_create_adapter = llm_module.create_adapter


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    manager = ConfigManager(config_file=tmp_path / "config.json", environ={})
    monkeypatch.setattr(config_module, "get_config", lambda: manager)
    return manager


def scripted_adapters(monkeypatch, replies: list) -> ScriptedTransport:
    scripted = ScriptedTransport(replies)
    monkeypatch.setattr(
        llm_module,
        "create_adapter",
        lambda config: real_create_adapter(config, transport=scripted.transport),
    )
    return scripted


@allure.feature("CLI")
@allure.story("Argument parsing")
@allure.severity(allure.severity_level.NORMAL)
def test_parse_args():
    args = parse_args(["hello", "-p", "ollama", "-m", "llama3", "-f", "a.md", "-f", "b.md", "--no-tools"])

    assert args.prompt == "hello"
    assert args.provider == "ollama"
    assert args.model == "llama3"
    assert args.file == ["a.md", "b.md"]
    assert args.no_tools
    assert args.language is None

    with pytest.raises(SystemExit):
        parse_args(["hello", "-p", "nobody"])


@allure.feature("CLI")
@allure.story("Note files")
@allure.severity(allure.severity_level.NORMAL)
def test_load_note_files(tmp_path):
    note = tmp_path / "todo.md"
    note.write_text("buy milk", encoding="utf-8")

    [loaded] = load_note_files([str(note)])

    assert loaded.name == "todo"
    assert loaded.path == "todo.md"
    assert loaded.content == "buy milk"


@allure.feature("CLI")
@allure.story("Tool status lines")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("call,expected", [
    (ToolCall(id="c1", name="read_file", status=ToolCallStatus.RUNNING), "[cyan]▶ read_file[/cyan]"),
    (ToolCall(id="c1", name="read_file", status=ToolCallStatus.ERROR, error="boom"), "[red]✗ read_file[/red] [red]boom[/red]"),
    (ToolCall(id="c1", name="", status=ToolCallStatus.PENDING), "[dim]⋯ tool[/dim]"),
    (
        ToolCall(id="c1", name="read_file", status=ToolCallStatus.SUCCESS, start_time=10.0, end_time=11.5),
        "[green]✓ read_file[/green] [dim](1.5s)[/dim]",
    ),
])
def test_tool_status_line(call: ToolCall, expected: str):
    assert tool_status_line(call) == expected


@allure.feature("CLI")
@allure.story("Missing credentials")
@allure.severity(allure.severity_level.CRITICAL)
def test_main_reports_setup_error(isolated_config, capsys):
    assert main(["hello", "-p", "openai"]) == 2
    assert "Setup error" in capsys.readouterr().out


@allure.feature("CLI")
@allure.story("Streaming to the terminal")
@allure.severity(allure.severity_level.CRITICAL)
def test_main_streams_answer(isolated_config, monkeypatch, capsys):
    scripted = scripted_adapters(monkeypatch, [ollama_body(["Hello ", "there."])])

    assert main(["hi", "-p", "ollama", "--no-tools"]) == 0

    out = capsys.readouterr().out
    assert "Hello there." in out
    assert "done" in out
    assert "tools" not in scripted.payloads[0]


@allure.feature("CLI")
@allure.story("Transport errors")
@allure.severity(allure.severity_level.NORMAL)
def test_main_reports_transport_error(isolated_config, monkeypatch, capsys):
    scripted_adapters(monkeypatch, [httpx.Response(500, text="boom")])

    assert main(["hi", "-p", "ollama"]) == 1
    assert "HTTP 500: boom" in capsys.readouterr().out
