"""Rich console setup and engine event callbacks."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .models import EngineResponse, Stage, Strategy

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
# Engine callbacks protocol
# ---------------------------------------------------------------------------


class EngineCallbacks(Protocol):
    """Protocol for conversation progress reporting."""

    def on_stage_start(self, stage: Stage, title: str) -> None: ...
    def on_stage_complete(self, stage: Stage) -> None: ...
    def on_strategy(self, strategy: Strategy, step: str | None) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class NullCallbacks:
    """Callbacks that ignore every event."""

    def on_stage_start(self, stage: Stage, title: str) -> None:
        pass

    def on_stage_complete(self, stage: Stage) -> None:
        pass

    def on_strategy(self, strategy: Strategy, step: str | None) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class RichCallbacks:
    """Rich-based implementation of EngineCallbacks."""

    def __init__(self, *, show_strategy: bool = False) -> None:
        self.show_strategy = show_strategy

    def on_stage_start(self, stage: Stage, title: str) -> None:
        console.rule(f"[bold blue]{title}[/]")

    def on_stage_complete(self, stage: Stage) -> None:
        console.print(f"  Stage {stage.value}: [green]COMPLETE[/]")

    def on_strategy(self, strategy: Strategy, step: str | None) -> None:
        if self.show_strategy:
            console.print(f"  [dim]{strategy.value} @ {step or '-'}[/]")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")


def print_response(response: EngineResponse) -> None:
    """Render one engine response in the terminal."""
    if response.superseded:
        console.print("  [dim](superseded by a newer message)[/]")
        return
    console.print(Panel(response.displayText, title="Coach", border_style="cyan"))
    for i, suggestion in enumerate(response.suggestions or [], 1):
        console.print(f"  [cyan]{i}.[/] {suggestion}")
