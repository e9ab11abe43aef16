import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from catalog_migrator.models.config import MigrationConfig

logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Configuration validation failed"""

    pass


class ConfigManager:
    """Loads the migration configuration from YAML with ${VAR} substitution"""

    def __init__(
        self,
        config_path: str = "config/migration.yaml",
        env_file: Optional[str] = None,
    ):
        self.config_path = Path(config_path)
        self.env_file = env_file
        self.env_loaded = False
        self._config: Optional[MigrationConfig] = None

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> MigrationConfig:
        """Load and validate configuration.

        Args:
            overrides: Top-level or dotted keys ("filter.skip_synced") applied
                on top of the file contents before validation

        Raises:
            FileNotFoundError: If the configuration file does not exist
            ConfigValidationError: If the YAML or the schema is invalid
        """
        if self._config and not overrides:
            return self._config

        # 1. Load environment
        if not self.env_loaded:
            load_dotenv(self.env_file)
            self.env_loaded = True

        # 2. Check file existence
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        # 3. Read YAML
        try:
            raw_content = self.config_path.read_text()
        except OSError as e:
            raise ConfigValidationError(f"Failed to read config file: {e}")

        # 4. Substitute env vars
        try:
            template = Template(raw_content)
            substituted_content = template.safe_substitute(os.environ)
            config_data = yaml.safe_load(substituted_content) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(
                f"Failed to parse YAML or substitute variables: {e}"
            )

        if not isinstance(config_data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        for key, value in (overrides or {}).items():
            _apply_override(config_data, key, value)

        # 5. Validate with Pydantic
        try:
            config = MigrationConfig(**config_data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration: {e}")

        logger.info(
            "config_loaded",
            path=str(self.config_path),
            environment=config.environment.value,
            dry_run=config.dry_run,
            strategy=config.filter.strategy.value,
        )
        if not overrides:
            self._config = config
        return config


def _apply_override(data: Dict[str, Any], dotted_key: str, value: Any) -> None:
    parts = dotted_key.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value
