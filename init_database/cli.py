"""
init-database — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Open a ``Database`` and run the statement.
  5. Report result to stdout.

Install and run::

    pip install -e .
    init-database --help
    init-database validate-config
    init-database query "SELECT * FROM users WHERE id = :id" --param id=1
    init-database read users --where status=active --column id --column name --limit 10
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="init-database",
    help="SQLite data-access layer: inspect config and run ad-hoc queries.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from init_database.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from init_database.utils.logging import configure_logging
    configure_logging(config.logging, debug=config.debug)


def _open_database(config, db_path: Optional[str]):
    """Build a ``Database`` from config, honouring a ``--db-path`` override."""
    from init_database.database import Database

    db_config = config.database
    if db_path:
        db_config = db_config.model_copy(update={"db_path": db_path})
    return Database(db_config, default_attempts=config.transaction.default_attempts)


def _parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    """Turn ``["a=1", "b=x"]`` into ``{"a": "1", "b": "x"}``; exit on malformed input."""
    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            typer.echo(f"[ERROR] {option} expects key=value, got '{pair}'.", err=True)
            raise typer.Exit(code=1)
        parsed[key.strip()] = value
    return parsed


def _print_result(mapper) -> None:
    for row in mapper.rows():
        typer.echo(json.dumps(row, default=str))
    typer.echo(f"[OK] {mapper.num_rows()} row(s).")


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  WAL mode:         {config.database.wal_mode}")
    typer.echo(f"  Foreign keys:     {config.database.foreign_keys}")
    typer.echo(f"  Tx attempts:      {config.transaction.default_attempts}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(), indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("query")
def query(
    sql: str = typer.Argument(..., help="SQL statement with :name placeholders."),
    params: Optional[list[str]] = typer.Option(
        None,
        "--param",
        "-p",
        help="Bound parameter as key=value. Repeatable.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Run one SQL statement and print its rows as JSON lines."""
    from init_database.connection import QueryExecutionError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    bound = _parse_pairs(params or [], "--param")

    db = _open_database(config, db_path)
    try:
        mapper = db.query(sql, bound)
    except QueryExecutionError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.get_connection().close()

    _print_result(mapper)


@app.command("read")
def read(
    table: str = typer.Argument(..., help="Table to read from."),
    where: Optional[list[str]] = typer.Option(
        None,
        "--where",
        "-w",
        help="Equality condition as column=value. Repeatable (ANDed).",
    ),
    columns: Optional[list[str]] = typer.Option(
        None,
        "--column",
        "-c",
        help="Column to select. Repeatable (default: all columns).",
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        min=0,
        help="Maximum number of rows.",
    ),
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Read rows from TABLE through ``Database.read``."""
    from init_database.connection import QueryExecutionError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    conditions = _parse_pairs(where or [], "--where")

    db = _open_database(config, db_path)
    try:
        if limit is not None:
            db.limit(limit)
        mapper = db.read(table, columns or None, conditions)
    except QueryExecutionError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.get_connection().close()

    _print_result(mapper)


if __name__ == "__main__":
    app()
