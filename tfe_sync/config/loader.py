"""YAML configuration loading with ``${VAR}`` / ``${VAR:default}`` expansion."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from tfe_sync.config.models import SyncConfig

CONFIG_FILENAMES = ("tfe-sync.yaml", "tfe-sync.yml", "config.yaml", "config.yml")


class ConfigurationError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""
    pass


class EnvironmentVariableError(ConfigurationError):
    """Raised when a referenced environment variable has no value and no default."""
    pass


class ConfigLoader:
    """Loads ``SyncConfig`` from YAML after expanding environment references."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*?)(?::([^}]*))?\}')

    def __init__(self, require_env_vars: bool = True, load_env_file: bool = True) -> None:
        """Initialize the loader.

        Args:
            require_env_vars: Fail on ``${VAR}`` without a value or default;
                when False the reference is kept verbatim
            load_env_file: Load ``.env`` from the working directory first
        """
        self.require_env_vars = require_env_vars
        if load_env_file:
            load_dotenv()

    def load_config(self, config_path: Path) -> SyncConfig:
        """Read, expand and validate a configuration file.

        Raises:
            ConfigurationError: For a missing or unreadable file, invalid YAML,
                an unset environment variable or a schema violation
        """
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            content = self._substitute_env_vars(config_path.read_text(encoding="utf-8"))
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must contain a YAML object")
        return load_config_from_dict(data)

    def _substitute_env_vars(self, content: str) -> str:
        def expand(match: re.Match) -> str:
            name, default = match.group(1), match.group(2)
            value = os.getenv(name)
            if value is not None:
                return value
            if default is not None:
                return default
            if self.require_env_vars:
                raise EnvironmentVariableError(
                    f"Required environment variable '{name}' is not set"
                )
            return match.group(0)

        return self.ENV_VAR_PATTERN.sub(expand, content)

    def get_missing_env_vars(self, config_path: Path) -> List[str]:
        """Names referenced by the file that have neither a value nor a default."""
        if not config_path.exists():
            return []

        content = config_path.read_text(encoding="utf-8")
        return sorted({
            match.group(1)
            for match in self.ENV_VAR_PATTERN.finditer(content)
            if match.group(2) is None and os.getenv(match.group(1)) is None
        })


def load_config_from_dict(config_data: Dict[str, Any]) -> SyncConfig:
    """Validate an already-parsed configuration mapping.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        return SyncConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """Look for a configuration file in ``start_path`` and its parents.

    The first directory containing any of ``CONFIG_FILENAMES`` wins; within
    a directory the names are tried in that order.
    """
    current = (start_path or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        for filename in CONFIG_FILENAMES:
            candidate = directory / filename
            if candidate.exists():
                return candidate
    return None
