"""Console rendering helpers for the uploader CLI."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .orchestrator.models import RunSummary, UploadOutcome

console = Console()


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def _file_size(path: str) -> Optional[int]:
    try:
        return Path(path).stat().st_size
    except OSError:
        return None


def render_configuration_summary(config: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render startup configuration summary."""
    out = out or console
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]gphotos-uploader[/bold green]",
        subtitle="[dim]uploader CLI[/dim]",
        border_style="blue",
    )
    out.print(panel)


class OutcomeTimeline:
    """Prints one timeline line per upload outcome."""

    def __init__(self, out: Optional[Console] = None):
        self._console = out or console
        self._started = time.monotonic()

    def _emit(self, status: str, style: str, path: str, detail: Optional[str] = None) -> None:
        elapsed = time.monotonic() - self._started
        size = _file_size(path)
        parts = [f"[dim]{elapsed:8.1f}s[/dim]", f"[{style}]{status:<6}[/{style}]", escape(path)]
        if size is not None:
            parts.append(f"[dim]({_human_size(size)})[/dim]")
        if detail:
            parts.append(f"[dim]- {escape(detail)}[/dim]")
        self._console.print(" ".join(parts), highlight=False)

    def on_completed(self, outcome: UploadOutcome) -> None:
        self._emit("DONE", "green", outcome.path)

    def on_ignored(self, outcome: UploadOutcome) -> None:
        self._emit("SKIP", "yellow", outcome.path, outcome.reason)

    def on_error(self, outcome: UploadOutcome) -> None:
        self._emit("FAIL", "red", outcome.path, outcome.error)


def render_final_summary(summary: RunSummary, out: Optional[Console] = None) -> None:
    out = out or console
    style = "red" if summary.errors else "green"
    out.print(f"[bold {style}]Done[/bold {style}] ({summary})")
