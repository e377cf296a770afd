"""Rich console setup and turn progress helpers."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.logging import RichHandler

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Turn callbacks protocol
# ---------------------------------------------------------------------------


class TurnCallbacks(Protocol):
    """Protocol for conversation turn progress reporting."""

    def on_turn_start(self, session_id: str, section: str) -> None: ...
    def on_model_round(self, round_num: int, max_rounds: int) -> None: ...
    def on_tool_call(self, name: str, tool_input: dict) -> None: ...
    def on_state_change(self, old_section: str, new_section: str, status: str) -> None: ...
    def on_turn_end(self, session_id: str, completeness: int) -> None: ...
    def on_warning(self, message: str) -> None: ...


class NullCallbacks:
    """Callbacks that report nothing. Used by the HTTP server."""

    def on_turn_start(self, session_id: str, section: str) -> None:
        pass

    def on_model_round(self, round_num: int, max_rounds: int) -> None:
        pass

    def on_tool_call(self, name: str, tool_input: dict) -> None:
        pass

    def on_state_change(self, old_section: str, new_section: str, status: str) -> None:
        pass

    def on_turn_end(self, session_id: str, completeness: int) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass


class RichCallbacks:
    """Rich-based implementation of TurnCallbacks."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    def on_turn_start(self, session_id: str, section: str) -> None:
        if self.verbose:
            console.print(f"  [dim]Turn on {session_id[:8]} (section {section})[/]")

    def on_model_round(self, round_num: int, max_rounds: int) -> None:
        if self.verbose:
            console.print(f"  [cyan]Model round {round_num}/{max_rounds}[/]")

    def on_tool_call(self, name: str, tool_input: dict) -> None:
        console.print(f"  [dim]tool:[/] {name}")

    def on_state_change(self, old_section: str, new_section: str, status: str) -> None:
        if old_section != new_section:
            console.rule(f"[bold blue]Section {new_section}[/]")
        if status == "COMPLETE":
            console.print("  [green]Interview complete[/]")

    def on_turn_end(self, session_id: str, completeness: int) -> None:
        console.print(f"  [dim]Contour completeness:[/] {completeness}%")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")
