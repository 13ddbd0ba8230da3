from __future__ import annotations

import sys
from typing import List, NoReturn, Optional

import typer

from tablemapper.config import get_settings
from tablemapper.errors import TableMapperError
from tablemapper.infrastructure import FetchMode, create_backend
from tablemapper.reporter import print_profile, print_rows
from tablemapper.sql.select import Select
from tablemapper.utils.logging import configure_logging

app = typer.Typer(help="tablemapper CLI: inspect tables through the configured backend.")


def _configure() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _fail(exc: TableMapperError) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    if settings.db_driver == "sqlite":
        target = f"sqlite:{settings.sqlite_path}"
    else:
        target = f"{settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    typer.echo(
        f"DB={target} | env={settings.app_env} paging={settings.default_paging} "
        f"profiling={settings.db_profiling} log={settings.log_level}"
    )


@app.command()
def tables() -> None:
    """
    List the tables in the configured database.
    """
    _configure()
    try:
        backend = create_backend()
        try:
            names: List[str] = sorted(backend.list_tables())
        finally:
            backend.close()
    except TableMapperError as exc:
        _fail(exc)
    if not names:
        typer.echo("No tables.")
        return
    for name in names:
        typer.echo(name)


@app.command()
def pages(
    table: str = typer.Argument(..., help="Table to count."),
    paging: Optional[int] = typer.Option(
        None, "--paging", "-p", help="Rows per page (default from settings)."
    ),
    where: Optional[str] = typer.Option(
        None, "--where", "-w", help="Literal WHERE condition, e.g. \"area_id = 1\"."
    ),
) -> None:
    """
    Show the row count and page count of a table.
    """
    _configure()
    settings = get_settings()
    try:
        backend = create_backend()
        try:
            select = Select(backend, paging=paging or settings.default_paging)
            info = select.from_(table).where(where or "").count_pages("*")
        finally:
            backend.close()
    except TableMapperError as exc:
        _fail(exc)
    typer.echo(f"{table}: count={info['count']} pages={info['pages']}")


@app.command()
def show(
    table: str = typer.Argument(..., help="Table to display."),
    page: int = typer.Option(1, "--page", "-n", help="1-based page number; 0 shows every row."),
    order: Optional[str] = typer.Option(None, "--order", "-o", help="Sort columns, e.g. \"name DESC\"."),
    paging: Optional[int] = typer.Option(None, "--paging", "-p", help="Rows per page."),
    profile: bool = typer.Option(False, "--profile", help="Also print the statements that ran."),
) -> None:
    """
    Render one page of a table's rows.
    """
    _configure()
    settings = get_settings()
    try:
        backend = create_backend(profiling=profile or None)
        try:
            select = Select(backend, paging=paging or settings.default_paging)
            select.from_(table, "*").order(order)
            info = select.count_pages("*")
            rows = select.limit_page(page).fetch(FetchMode.ALL)
            stats = backend.get_profile()
        finally:
            backend.close()
    except TableMapperError as exc:
        _fail(exc)

    pager = {**info, "page": page, "paging": select.get_paging()}
    print_rows(rows, title=table, pager=pager if page > 0 else None)
    if profile:
        print_profile(stats)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
