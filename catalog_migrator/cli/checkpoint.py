"""Checkpoint commands.

Inspect or delete the checkpoint of the configured run.
"""

import json
from pathlib import Path

import typer

from catalog_migrator.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_success,
    display_warning,
    handle_errors,
    load_config,
)
from catalog_migrator.services.checkpoint_service import CheckpointService
from catalog_migrator.utils.hash import calculate_config_hash

checkpoint_app = typer.Typer(help="Inspect or clear migration checkpoints")


@checkpoint_app.command(name="show")
@handle_errors
def checkpoint_show(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to migration config YAML"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw checkpoint"),
):
    """Display the stored checkpoint (or its backup)."""
    config = load_config(config_path)
    service = CheckpointService(config.checkpoint)
    record = service.load_record()

    if record is None:
        display_warning(f"No checkpoint found at {service.path}")
        return

    if as_json:
        typer.echo(json.dumps(record.to_json_dict(), indent=2))
        return

    state = record.state
    matches = record.config_hash == calculate_config_hash(config)
    typer.echo(f"Checkpoint: {service.path}")
    typer.echo(f"  Saved at: {record.timestamp.isoformat()}")
    typer.echo(f"  Completed run: {'yes' if record.completed else 'no'}")
    typer.echo(
        f"  Config hash: {record.config_hash}"
        f" ({'matches' if matches else 'differs from'} current config)"
    )
    typer.echo(f"  Processed: {state.processed_count}/{state.total_records}")
    typer.echo(f"  Succeeded: {state.success_count}")
    typer.echo(f"  Failed: {state.error_count}")
    typer.echo(f"  Skipped: {state.skipped_count}")
    typer.echo(f"  Last processed id: {state.last_processed_id or '-'}")


@checkpoint_app.command(name="clear")
@handle_errors
def checkpoint_clear(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to migration config YAML"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete the checkpoint and its backup."""
    config = load_config(config_path)
    service = CheckpointService(config.checkpoint)

    if not service.exists():
        display_warning("No checkpoint to clear")
        return

    if not yes:
        typer.confirm(f"Delete checkpoint at {service.path}?", abort=True)

    if not service.clear():
        raise typer.Exit(code=1)
    display_success("Checkpoint cleared")
