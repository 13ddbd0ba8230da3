"""
Example schema creation and seeding script for tablemapper.

Creates the example tables (users, areas, nodes, metas, tags, taggings) through
their models and inserts a small deterministic data set, so the CLI and manual
experiments have something to read.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import typer

from tablemapper.config import get_settings
from tablemapper.errors import TableMapperError, ValidationError
from tablemapper.example import MODELS, build_catalog, seed
from tablemapper.infrastructure import SqliteBackend, create_backend
from tablemapper.reporter import print_invalid
from tablemapper.utils.logging import configure_logging

app = typer.Typer(help="Create the example tables and seed them with sample rows.")


@app.command()
def main(
    sqlite: Path | None = typer.Option(
        None,
        "--sqlite",
        help="Seed this SQLite file instead of the configured backend.",
    ),
    drop: bool = typer.Option(
        False,
        "--drop",
        help="Drop existing example tables first.",
    ),
) -> None:
    """
    Create the example schema and seed it.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    start = time.perf_counter()
    backend = SqliteBackend(str(sqlite)) if sqlite else create_backend(settings)
    try:
        if drop:
            existing = {name.lower() for name in backend.list_tables()}
            for model_class in MODELS:
                name = model_class.default_table_name()
                if name in existing:
                    typer.echo(f"Dropping {name}")
                    backend.drop_table(name)
        counts = seed(build_catalog(backend))
    except ValidationError as exc:
        typer.echo(f"Seeding failed: {exc}", err=True)
        print_invalid(exc.invalid)
        raise typer.Exit(code=1)
    except TableMapperError as exc:
        typer.echo(f"Seeding failed: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        backend.close()

    duration = time.perf_counter() - start
    for table, rows in counts.items():
        typer.echo(f"{table:<10} {rows:>4} rows")
    typer.echo(f"Seeding completed in {duration:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
