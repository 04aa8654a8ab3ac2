"""Main entry point for the cxfeed command line interface."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from cxfeed.core.config import ConfigManager, CxFeedConfig
from cxfeed.core.exceptions import ConfigurationError, CxFeedError, DatasetError, UpstreamError
from cxfeed.core.logging import configure_logging, logger
from cxfeed.core.services import run_refresh
from cxfeed.core.storage import DatasetStore

from .constants import (
    CONFIGURATION_EXIT_CODE,
    DATASET_EXIT_CODE,
    SYSTEM_EXIT_CODE,
    UPSTREAM_EXIT_CODE,
)
from .utils import emit_error, render_summary


def create_app() -> typer.Typer:
    """Create a Typer application instance for cxfeed."""

    app = typer.Typer(
        add_completion=False,
        invoke_without_command=True,
        help="Refresh the commodity exchange price snapshot.",
    )

    @app.callback()
    def main(
        ctx: typer.Context,
        config_path: Path | None = typer.Option(
            None,
            "--config",
            "-c",
            help="TOML configuration file (default: ./cxfeed.toml when present).",
        ),
        dataset: Path | None = typer.Option(None, "--dataset", help="Persisted JSON dataset."),
        export: Path | None = typer.Option(None, "--export", help="Derived CSV export."),
        base_url: str | None = typer.Option(None, "--base-url", help="Market-data API base URL."),
        log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
        plain_logs: bool = typer.Option(False, "--plain-logs", help="Human readable log lines instead of JSON."),
        no_color: bool = typer.Option(False, "--no-color", help="Disable colorized summary output."),
    ) -> None:
        try:
            config = _resolve_config(config_path, dataset, export, base_url, log_level)
        except ConfigurationError as error:
            emit_error(error.message, error.error_code, details=error.details)
            raise typer.Exit(code=CONFIGURATION_EXIT_CODE) from error

        configure_logging(
            level=config.logging.level,
            serialize=config.logging.serialize and not plain_logs,
            file_output=config.logging.file is not None,
            file_path=config.logging.file,
        )
        ctx.obj = {"config": config, "no_color": no_color}
        if ctx.invoked_subcommand is None:
            _refresh(config, no_color=no_color)

    @app.command("refresh")
    def refresh_command(ctx: typer.Context) -> None:
        """Fetch the listing, recompute stale statistics and rewrite the dataset."""

        _refresh(ctx.obj["config"], no_color=ctx.obj["no_color"])

    @app.command("export")
    def export_command(ctx: typer.Context) -> None:
        """Rewrite the CSV export from the persisted dataset without contacting the API."""

        config: CxFeedConfig = ctx.obj["config"]
        store = DatasetStore(config.dataset.json_path, config.dataset.csv_path)
        try:
            store.save(store.load())
        except DatasetError as error:
            emit_error(error.message, error.error_code, details=error.details)
            raise typer.Exit(code=DATASET_EXIT_CODE) from error

    return app


def _resolve_config(
    config_path: Path | None,
    dataset: Path | None,
    export: Path | None,
    base_url: str | None,
    log_level: str | None,
) -> CxFeedConfig:
    if config_path is not None and not config_path.exists():
        raise ConfigurationError(f"Config file '{config_path}' does not exist", source=str(config_path))
    manager = ConfigManager(config_path)

    updates: dict[str, dict[str, object]] = {}
    if dataset is not None:
        updates.setdefault("dataset", {})["json_path"] = str(dataset)
    if export is not None:
        updates.setdefault("dataset", {})["csv_path"] = str(export)
    if base_url is not None:
        updates.setdefault("upstream", {})["base_url"] = base_url
    if log_level is not None:
        updates.setdefault("logging", {})["level"] = log_level.upper()
    if updates:
        manager.update_config(**updates)
    return manager.get_config()


def _refresh(config: CxFeedConfig, *, no_color: bool) -> None:
    try:
        report = asyncio.run(run_refresh(config))
    except DatasetError as error:
        logger.bind(error_code=error.error_code).error(error.message)
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=DATASET_EXIT_CODE) from error
    except UpstreamError as error:
        logger.bind(error_code=error.error_code).error(error.message)
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=UPSTREAM_EXIT_CODE) from error
    except CxFeedError as error:
        emit_error(error.message, error.error_code, details=error.details)
        raise typer.Exit(code=SYSTEM_EXIT_CODE) from error

    render_summary(report, no_color=no_color)


app = create_app()


def main() -> None:
    """Console script entry point."""

    app()
