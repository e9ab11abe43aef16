"""Validate command for configuration files."""

import asyncio
from pathlib import Path

import typer

from catalog_migrator.cli.utils import (
    display_error,
    display_info,
    display_success,
    handle_errors,
)
from catalog_migrator.models.config import MigrationConfig
from catalog_migrator.services.config_manager import ConfigManager
from catalog_migrator.services.postgrest_client import PostgrestClient
from catalog_migrator.services.stripe_client import StripeClient
from catalog_migrator.utils.hash import calculate_config_hash


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
    check_connections: bool = typer.Option(
        False,
        "--check-connections",
        help="Also ping the source store and the remote platform",
    ),
):
    """Validate configuration file syntax and semantics."""
    try:
        manager = ConfigManager(config_path=str(config_path))
        config = manager.load_config()
    except Exception as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    display_success("Configuration is valid! ✅")
    typer.echo(f"  Environment: {config.environment.value}")
    typer.echo(f"  Strategy: {config.filter.strategy.value}")
    typer.echo(f"  Batch size: {config.batch_size}")
    typer.echo(f"  Config hash: {calculate_config_hash(config)}")

    if check_connections:
        display_info("Checking connections...")
        failures = asyncio.run(_check_connections(config))
        if failures:
            for name, error in failures.items():
                display_error(f"  {name}: {error}")
            raise typer.Exit(code=1)
        display_success("Source store and remote platform are reachable")


async def _check_connections(config: MigrationConfig) -> dict:
    failures = {}
    try:
        await PostgrestClient(config.source).ping(config.source.table)
    except Exception as e:
        failures["source_store"] = str(e)
    try:
        await StripeClient(config.remote).ping()
    except Exception as e:
        failures["remote_platform"] = str(e)
    return failures
