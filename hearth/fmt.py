"""ANSI-formatted stderr output using Rich."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.rule import Rule
from rich.text import Text

_console = Console(stderr=True)


def init(*, color: bool = False, no_color: bool = False, debug: bool = False) -> None:
    """Reconfigure the module-level console from CLI flags.

    Call once at startup, before any output. With ``debug`` the root logger
    is routed through a RichHandler on the same console at DEBUG level.
    """
    global _console
    kwargs: dict = {"stderr": True}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(**kwargs)

    level = logging.DEBUG if debug else logging.WARNING
    handler = RichHandler(console=_console, show_path=debug, markup=False)
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)
    # LiteLLM logs under its own logger, not a child of ours.
    logging.getLogger("LiteLLM").setLevel(level)


# -- Session structure -------------------------------------------------------


def banner(model: str, provider: str, capabilities: list[str]) -> None:
    _console.print(Rule("Welcome to the hearth AI console", style="cyan"))
    _console.print(Text(f"  Model: {model} ({provider})", style="dim"))
    if capabilities:
        _console.print(
            Text(f"  Capabilities: {', '.join(capabilities)}", style="dim")
        )


def repl_hints() -> None:
    _console.print(
        Text(
            "  Start chatting! Type 'exit', 'quit', or 'bye' to end the conversation.\n"
            "  Type 'clear' to clear chat history.\n"
            "  Type 'help' for available commands.",
            style="dim",
        )
    )
    _console.print(Rule(style="cyan"))


def goodbye() -> None:
    _console.print(Text("Thanks for chatting! Goodbye!", style="bold green"))


def llm_timing(elapsed: float, kind: str) -> None:
    text = Text()
    text.append(f"  LLM responded in {elapsed:.1f}s", style="green")
    text.append(f"  reply={escape(kind)}", style="green")
    _console.print(text)


def llm_spinner(label: str = "Processing"):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


# -- Tool calls --------------------------------------------------------------


def tool_call(name: str, args_json: str) -> None:
    header = Text()
    header.append("  ▶ ", style="bold magenta")
    header.append(name, style="bold magenta")
    _console.print(header)
    if args_json:
        for line in args_json.splitlines():
            _console.print(Text(f"    {line}", style="dim"))


def tool_result(name: str, elapsed: float, preview: str) -> None:
    header = Text()
    header.append(f"  ✓ {name}", style="green")
    header.append(f"  {elapsed:.1f}s", style="green")
    _console.print(header)
    if preview:
        _console.print(Text(f"    {preview}", style="dim"))


def tool_error(name: str, msg: str) -> None:
    header = Text()
    header.append(f"  ✗ {name}", style="bold red")
    header.append(f"  {msg}", style="red")
    _console.print(header)


# -- Diagnostics -------------------------------------------------------------


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def context_stats(label: str, turns: int, tokens: int) -> None:
    _console.print(Text(f"  {label}: {turns} turns, ~{tokens} tokens", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def help_text(text: str) -> None:
    _console.print(Text(text))
