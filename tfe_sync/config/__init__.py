"""Configuration package for tfe-workspace-sync."""

from .loader import ConfigLoader, ConfigurationError, find_config_file
from .models import (
    LoggingConfig,
    SyncConfig,
    TFEConfig,
    VCSRepoConfig,
    WorkspaceConfig,
)

__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "find_config_file",
    "LoggingConfig",
    "SyncConfig",
    "TFEConfig",
    "VCSRepoConfig",
    "WorkspaceConfig",
]
