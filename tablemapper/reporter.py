from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from tablemapper.utils.profiler import ProfileStats


def _cell(value: Any) -> str:
    if value is None:
        return "[dim]NULL[/dim]"
    if isinstance(value, (list, dict)):
        return f"[dim]{type(value).__name__}({len(value)})[/dim]"
    text = str(value)
    return text if len(text) <= 60 else text[:57] + "..."


def print_rows(
    rows: Sequence[Mapping[str, Any]],
    title: str = "Rows",
    pager: Optional[Mapping[str, int]] = None,
    columns: Optional[Iterable[str]] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render query rows (or ``Record.to_dict()`` output) as a rich table.

    Columns default to the keys of the first row. With ``pager`` info the
    caption shows the page position and the total row count.
    """
    console = console or Console()

    if not rows:
        console.print(f"[yellow]No rows in {title}.[/yellow]")
        return

    names: List[str] = list(columns) if columns else list(rows[0].keys())
    caption = None
    if pager:
        caption = (
            f"Page {pager.get('page', 0)} of {pager.get('pages', 0)} "
            f"({pager.get('count', 0):,} rows, {pager.get('paging', 0)} per page)"
        )

    table = Table(title=title, box=box.ROUNDED, caption=caption)
    for index, name in enumerate(names):
        if index == 0:
            table.add_column(name, style="cyan", no_wrap=True)
        else:
            table.add_column(name)

    for row in rows:
        table.add_row(*(_cell(row.get(name)) for name in names))

    console.print(table)


def print_invalid(invalid: Mapping[str, List[str]], console: Optional[Console] = None) -> None:
    """Render a field -> messages map from a failed save or filter."""
    console = console or Console()
    if not invalid:
        console.print("[green]No invalid fields.[/green]")
        return

    table = Table(title="Invalid fields", box=box.ROUNDED)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Messages", style="red")
    for field, messages in invalid.items():
        table.add_row(field, "\n".join(messages))
    console.print(table)


def print_profile(stats: Sequence[ProfileStats], console: Optional[Console] = None) -> None:
    """Render per-statement timings, slowest first."""
    console = console or Console()
    if not stats:
        console.print("[yellow]No statements profiled.[/yellow]")
        return

    table = Table(
        title="Statement profile",
        box=box.ROUNDED,
        caption=f"{len(stats)} statements, {sum(s.duration_ms for s in stats):.2f} ms total",
    )
    table.add_column("ms", justify="right", style="green")
    table.add_column("Statement", style="magenta")
    table.add_column("Failed", justify="center", style="red")

    for item in sorted(stats, key=lambda s: s.duration_ms, reverse=True):
        table.add_row(
            f"{item.duration_ms:.2f}",
            _cell(item.label),
            "yes" if item.failed else "",
        )
    console.print(table)


__all__ = ["print_invalid", "print_profile", "print_rows"]
