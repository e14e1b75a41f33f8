"""
Main entry point for llm_streamcore.

Streams one exchange to the terminal: text as it arrives, and a status
line for every tool-call transition.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .constants import APP_DESCRIPTION, APP_NAME, APP_VERSION, PROVIDERS, SUPPORTED_LANGUAGES
from .errors import SetupError, StreamCoreError
from .models import NoteFile, ToolCall, ToolCallStatus

_STATUS_STYLES = {
    ToolCallStatus.PENDING: ("⋯", "dim"),
    ToolCallStatus.RUNNING: ("▶", "cyan"),
    ToolCallStatus.SUCCESS: ("✓", "green"),
    ToolCallStatus.ERROR: ("✗", "red"),
}


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(prog=APP_NAME, description=APP_DESCRIPTION)

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"{APP_NAME} {APP_VERSION}",
    )
    parser.add_argument("prompt", type=str, help="Prompt to send")
    parser.add_argument(
        "-p", "--provider",
        type=str,
        choices=sorted(PROVIDERS),
        help="LLM provider to use",
    )
    parser.add_argument("-m", "--model", type=str, help="Model to use")
    parser.add_argument("--base-url", type=str, help="Override the provider endpoint")
    parser.add_argument(
        "--language",
        type=str,
        choices=SUPPORTED_LANGUAGES,
        help="Response language",
    )
    parser.add_argument(
        "-f", "--file",
        action="append",
        default=[],
        help="Note file to use as context and tool workspace (repeatable)",
    )
    parser.add_argument("--no-tools", action="store_true", help="Do not offer tools")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def load_note_files(paths: list[str]) -> list[NoteFile]:
    notes = []
    for raw in paths:
        path = Path(raw)
        notes.append(NoteFile(
            name=path.stem,
            content=path.read_text(encoding="utf-8"),
            path=path.name,
        ))
    return notes


def tool_status_line(call: ToolCall) -> str:
    """Render a one-line status for a tool-call snapshot."""
    symbol, style = _STATUS_STYLES[call.status]
    line = f"[{style}]{symbol} {call.name or 'tool'}[/{style}]"
    if call.status is ToolCallStatus.ERROR and call.error:
        line += f" [red]{call.error}[/red]"
    elif call.status is ToolCallStatus.SUCCESS and call.start_time and call.end_time:
        line += f" [dim]({call.end_time - call.start_time:.1f}s)[/dim]"
    return line


async def run_exchange(args: argparse.Namespace, console: Console) -> int:
    from .config import get_config
    from .llm import create_adapter
    from .orchestrator import Orchestrator
    from .tools import create_builtin_registry

    manager = get_config()
    config = manager.provider_config(
        provider=args.provider,
        model=args.model,
        base_url=args.base_url,
        language=args.language,
        debug_stream=True if args.verbose else None,
    )
    adapter = create_adapter(config)
    notes = load_note_files(args.file)

    def on_tool_event(call: ToolCall) -> None:
        if call.status is not ToolCallStatus.PENDING:
            console.print()
            console.print(tool_status_line(call))

    if args.no_tools:
        orchestrator = Orchestrator(adapter, settings=manager.exchange_settings(), on_tool_event=on_tool_event)
    else:
        registry, _ = create_builtin_registry(notes)
        orchestrator = Orchestrator.from_registry(
            adapter,
            registry,
            settings=manager.exchange_settings(),
            on_tool_event=on_tool_event,
        )

    exchange = orchestrator.exchange(args.prompt, context_files=notes)
    async for fragment in exchange:
        console.print(fragment, end="", markup=False, highlight=False)
    console.print()
    console.print(f"[dim]{exchange.result.state.value} · {exchange.result.rounds} rounds[/dim]")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    console = Console()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )

    try:
        return asyncio.run(run_exchange(args, console))
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled[/dim]")
        return 130
    except SetupError as e:
        console.print(f"[red]Setup error:[/red] {e}")
        return 2
    except (StreamCoreError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
