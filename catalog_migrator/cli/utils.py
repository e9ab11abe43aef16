"""Shared CLI utilities.

Provides common functionality for all CLI commands.
"""

import functools
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import structlog
import typer

from catalog_migrator.models.config import MigrationConfig
from catalog_migrator.observability.logging import configure_logging
from catalog_migrator.services.config_manager import (
    ConfigManager,
    ConfigValidationError,
)

# Configure structured logging; commands reconfigure from the loaded config
configure_logging()
logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)

DEFAULT_CONFIG_PATH = Path("config/migration.yaml")


def load_config(
    config_path: Path, overrides: Optional[Dict[str, Any]] = None
) -> MigrationConfig:
    """Load and validate configuration.

    Args:
        config_path: Path to configuration file.
        overrides: Dotted-key overrides from command-line flags.

    Returns:
        Validated MigrationConfig.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    config_manager = ConfigManager(config_path=str(config_path))
    try:
        return config_manager.load_config(overrides=overrides)
    except (FileNotFoundError, ConfigValidationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def apply_logging(config: MigrationConfig) -> None:
    configure_logging(
        level=config.logging.level,
        json_output=config.logging.json_output,
    )


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling.

    Catches exceptions and displays user-friendly error messages.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)
