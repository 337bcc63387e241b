"""CLI for the ``ledger_pipeline`` package.

A Typer-based console interface over :mod:`ledger_pipeline.api`. The root
callback loads a local ``.env`` with ``python-dotenv`` (never overriding
variables that are already set) and configures logging before any command
runs. Errors are printed to stderr and mapped to exit code 1.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .config import Settings, load_log_level, load_settings
from .errors import ClassificationBackendError, ConfigurationError
from .logging_setup import configure_logging

app = typer.Typer(
    add_completion=False,
    no_args_is_help=False,
    help="Bronze-to-silver transaction pipeline: ingest, classify and reconcile.",
)

# Module-level option objects keep calls out of parameter defaults.
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    ..., "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
USER_ID_OPTION: OptionInfo = typer.Option(..., "--user-id", help="Owning user id.")


def _error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _settings(database_url: str | None, *, require_classifier: bool) -> Settings:
    try:
        return load_settings(database_url=database_url, require_classifier=require_classifier)
    except ConfigurationError as e:
        _error(str(e))
        raise typer.Exit(1) from e


def _report_backend_error(e: ClassificationBackendError) -> None:
    _error(e.hint)
    print(f"Details: {e.detail}", file=sys.stderr)


@app.command("ingest")
def ingest_cmd(
    user_id: Annotated[str, USER_ID_OPTION],
    csv_path: Annotated[
        Path,
        typer.Option(..., "--csv-path", help="Headerless statement CSV to upload."),
    ],
    account: Annotated[
        str | None, typer.Option(..., "--account", help="Account label for every row.")
    ] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Insert one pending raw record per statement line."""

    from .api import ingest_file

    settings = _settings(database_url, require_classifier=False)
    try:
        result = ingest_file(settings, user_id, csv_path, account)
    except FileNotFoundError as e:
        _error(f"File not found: {csv_path}")
        raise typer.Exit(1) from e
    except PermissionError as e:
        _error(f"Permission denied: {csv_path}")
        raise typer.Exit(1) from e
    typer.echo(f"{result.file_id}\t{result.inserted}")


@app.command("run-cycle")
def run_cycle_cmd(database_url: Annotated[str | None, DATABASE_URL_OPTION] = None) -> None:
    """Process one batch of pending transactions."""

    from .api import run_single_cycle

    settings = _settings(database_url, require_classifier=True)
    try:
        report = run_single_cycle(settings)
    except ClassificationBackendError as e:
        _report_backend_error(e)
        raise typer.Exit(1) from e
    except ConfigurationError as e:
        _error(str(e))
        raise typer.Exit(1) from e
    typer.echo(report.message)


@app.command("drain")
def drain_cmd(database_url: Annotated[str | None, DATABASE_URL_OPTION] = None) -> None:
    """Run batch cycles until the backlog is exhausted or a stop condition hits."""

    from .api import drain_backlog

    settings = _settings(database_url, require_classifier=True)
    try:
        report = drain_backlog(settings)
    except ConfigurationError as e:
        _error(str(e))
        raise typer.Exit(1) from e
    if report.error is not None:
        _report_backend_error(report.error)
        raise typer.Exit(1)
    typer.echo(report.message)


@app.command("reprocess")
def reprocess_cmd(
    user_id: Annotated[str, USER_ID_OPTION],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Discard a user's canonical transactions and classify everything again."""

    from .api import reprocess_user

    settings = _settings(database_url, require_classifier=True)
    try:
        reset, report = reprocess_user(settings, user_id)
    except ConfigurationError as e:
        _error(str(e))
        raise typer.Exit(1) from e
    typer.echo(
        f"Reset {reset.raw_reset} transactions "
        f"({reset.canonical_deleted} canonical rows discarded)."
    )
    if report.error is not None:
        _report_backend_error(report.error)
        raise typer.Exit(1)
    typer.echo(report.message)


@app.command("delete-file")
def delete_file_cmd(
    user_id: Annotated[str, USER_ID_OPTION],
    file_id: Annotated[str, typer.Option(..., "--file-id", help="Uploaded file id.")],
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Delete an uploaded file's raw records and their canonical rows."""

    from .api import remove_file

    settings = _settings(database_url, require_classifier=False)
    removed = remove_file(settings, user_id, file_id)
    typer.echo(f"Deleted {removed} transactions.")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging at the level
    named by ``LEDGER_PIPELINE_LOG_LEVEL``.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    try:
        configure_logging(load_log_level())
    except ConfigurationError as e:
        _error(str(e))
        raise typer.Exit(1) from e

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


if __name__ == "__main__":  # pragma: no cover
    app()
