"""Terminal widgets: the step tracker tree and arrow-key option picker."""

from dataclasses import dataclass
from typing import Callable, Optional

import readchar
import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

STATUS_SYMBOLS = {
    "pending": "[green dim]○[/green dim]",
    "running": "[cyan]○[/cyan]",
    "done": "[green]●[/green]",
    "skipped": "[yellow]○[/yellow]",
    "error": "[red]●[/red]",
}

_KEYMAP = {
    readchar.key.UP: "up",
    readchar.key.DOWN: "down",
    readchar.key.ENTER: "enter",
    readchar.key.ESC: "escape",
}


@dataclass
class Step:
    key: str
    label: str
    status: str = "pending"
    detail: str = ""

    def render(self) -> str:
        symbol = STATUS_SYMBOLS.get(self.status, " ")
        detail = self.detail.strip()
        if self.status == "pending":
            suffix = f" ({detail})" if detail else ""
            return f"{symbol} [bright_black]{self.label}{suffix}[/bright_black]"
        if detail:
            return f"{symbol} [white]{self.label}[/white] [bright_black]({detail})[/bright_black]"
        return f"{symbol} [white]{self.label}[/white]"


class StepTracker:
    """Ordered list of steps rendered as a rich Tree.

    ``attach_refresh`` registers a callback (typically ``Live.update``) that
    runs after every change, so a live display redraws itself.
    """

    def __init__(self, title: str):
        self.title = title
        self.steps: list[Step] = []
        self._refresh: Optional[Callable[[], None]] = None

    def attach_refresh(self, cb: Callable[[], None]) -> None:
        self._refresh = cb

    def add(self, key: str, label: str) -> None:
        if self._find(key) is None:
            self.steps.append(Step(key, label))
            self._changed()

    def start(self, key: str, detail: str = "") -> None:
        self._set(key, "running", detail)

    def complete(self, key: str, detail: str = "") -> None:
        self._set(key, "done", detail)

    def error(self, key: str, detail: str = "") -> None:
        self._set(key, "error", detail)

    def skip(self, key: str, detail: str = "") -> None:
        self._set(key, "skipped", detail)

    def status(self, key: str) -> Optional[str]:
        step = self._find(key)
        return step.status if step else None

    def _find(self, key: str) -> Optional[Step]:
        return next((s for s in self.steps if s.key == key), None)

    def _set(self, key: str, status: str, detail: str) -> None:
        step = self._find(key)
        if step is None:
            step = Step(key, key)
            self.steps.append(step)
        step.status = status
        if detail:
            step.detail = detail
        self._changed()

    def _changed(self) -> None:
        if self._refresh:
            self._refresh()

    def render(self) -> Tree:
        tree = Tree(f"[cyan]{self.title}[/cyan]", guide_style="grey50")
        for step in self.steps:
            tree.add(step.render())
        return tree


def get_key() -> str:
    """Read one keypress; arrows, Enter and Esc come back as names."""
    key = readchar.readkey()
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt
    return _KEYMAP.get(key, key)


def _selection_panel(options: dict, prompt_text: str, selected: int) -> Panel:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan", justify="left", width=3)
    table.add_column(style="white", justify="left")
    for i, (key, description) in enumerate(options.items()):
        marker = "▶" if i == selected else " "
        suffix = f" [dim]({description})[/dim]" if description else ""
        table.add_row(marker, f"[cyan]{key}[/cyan]{suffix}")
    table.add_row("", "")
    table.add_row("", "[dim]↑/↓ move, Enter selects, Esc cancels[/dim]")
    return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))


def select_with_arrows(
    console: Console,
    options: dict,
    prompt_text: str = "Select an option",
    default_key: Optional[str] = None,
) -> str:
    """Let the user pick one key of ``options`` (key -> description).

    Esc or Ctrl+C cancels with exit code 1.
    """
    keys = list(options)
    index = keys.index(default_key) if default_key in options else 0

    console.print()
    with Live(_selection_panel(options, prompt_text, index), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                key = "escape"
            if key == "enter":
                return keys[index]
            if key == "escape":
                console.print("\n[yellow]Selection cancelled[/yellow]")
                raise typer.Exit(1)
            if key in ("up", "down"):
                index = (index + (1 if key == "down" else -1)) % len(keys)
                live.update(_selection_panel(options, prompt_text, index), refresh=True)
