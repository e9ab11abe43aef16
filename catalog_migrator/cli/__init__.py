"""Catalog Migrator CLI Package.

Usage:
    catalog-migrator run --config config/migration.yaml
    catalog-migrator run --dry-run --batch-size 20
    catalog-migrator validate config/migration.yaml --check-connections
    catalog-migrator checkpoint show
    catalog-migrator checkpoint clear --yes
"""

import typer

from catalog_migrator.cli.checkpoint import checkpoint_app
from catalog_migrator.cli.run import run_command
from catalog_migrator.cli.validate import validate_command

app = typer.Typer(help="Catalog Migrator: move CMS products and prices to Stripe")

app.command(name="run")(run_command)
app.command(name="validate")(validate_command)

app.add_typer(checkpoint_app, name="checkpoint")

__all__ = [
    "app",
    "run_command",
    "validate_command",
    "checkpoint_app",
]
