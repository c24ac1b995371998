"""Configuration models for tfe-workspace-sync using Pydantic."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output formats."""
    JSON = "json"
    TEXT = "text"


class TFEConfig(BaseModel):
    """Terraform Cloud / Enterprise API configuration."""

    hostname: str = Field(
        "app.terraform.io",
        description="Terraform Cloud / Enterprise hostname",
        min_length=1,
    )
    token: SecretStr = Field(
        ...,
        description="API token with permission to manage workspaces",
    )
    timeout_seconds: int = Field(
        30,
        description="Timeout for API calls in seconds",
        ge=1,
    )
    rate_limit_per_minute: int = Field(
        1800,
        description="Rate limit for API calls per minute",
        ge=1,
    )
    max_retries: int = Field(
        3,
        description="Maximum retry attempts for server and network errors",
        ge=0,
        le=10,
    )
    retry_delay_seconds: float = Field(
        1.0,
        description="Initial delay between retries in seconds",
        ge=0.1,
        le=30.0,
    )
    page_size: int = Field(
        20,
        description="Page size used when scanning workspace listings",
        ge=1,
        le=100,
    )

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: str) -> str:
        """Strip protocol and trailing slash from the hostname."""
        v = v.replace("https://", "").replace("http://", "").rstrip("/")
        if not v:
            raise ValueError("Hostname cannot be empty")
        return v

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: SecretStr) -> SecretStr:
        """Validate that the token is not blank."""
        if not v.get_secret_value().strip():
            raise ValueError("API token cannot be empty")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.TEXT, description="Log output format")


class VCSRepoConfig(BaseModel):
    """Declared VCS repository block of a workspace."""

    identifier: str = Field(
        ...,
        description="Repository reference, e.g. 'org/repo'",
        min_length=1,
    )
    oauth_token_id: str = Field(
        ...,
        description="OAuth token ID of the VCS connection",
        min_length=1,
    )
    branch: str = Field(
        "",
        description="Repository branch (empty means the default branch)",
    )
    ingress_submodules: bool = Field(
        False,
        description="Whether submodules are fetched when cloning",
    )


class WorkspaceConfig(BaseModel):
    """Declared configuration of a single workspace.

    ``terraform_version``, ``trigger_prefixes``, ``working_directory`` and
    ``vcs_repo`` use ``None`` for "not declared". For ``working_directory``
    an explicit empty string is a distinct, declared value.

    ``address`` keys the local record. Changing ``name`` renames the remote
    workspace in place as long as ``address`` stays the same.
    """

    name: str = Field(..., description="Workspace name", min_length=1)
    organization: str = Field(
        ...,
        description="Organization owning the workspace (immutable)",
        min_length=1,
    )
    auto_apply: bool = Field(False, description="Automatically apply successful plans")
    file_triggers_enabled: bool = Field(
        True, description="Only queue runs for changes under the trigger prefixes"
    )
    operations: bool = Field(True, description="Run operations remotely")
    queue_all_runs: bool = Field(True, description="Queue runs before the first apply")
    ssh_key_id: str = Field("", description="SSH key to link (empty for none)")
    terraform_version: Optional[str] = Field(None, description="Terraform version pin")
    trigger_prefixes: Optional[List[str]] = Field(
        None, description="Ordered list of directory prefixes that trigger runs"
    )
    working_directory: Optional[str] = Field(
        None, description="Relative working directory ('' is a valid value)"
    )
    vcs_repo: Optional[VCSRepoConfig] = Field(None, description="Linked VCS repository")
    address: str = Field(
        ...,
        description="Key of the local record; stays fixed when the workspace is renamed",
        min_length=1,
    )

    @field_validator("name", "organization")
    @classmethod
    def validate_no_separators(cls, v: str) -> str:
        """Names end up in packed identifiers and URL paths."""
        if "/" in v or "|" in v:
            raise ValueError("must not contain '/' or '|'")
        return v


class SyncConfig(BaseModel):
    """Main configuration model."""

    tfe: TFEConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    state_dir: Path = Field(
        Path("./state"),
        description="Directory for storing workspace records",
    )
    workspaces: List[WorkspaceConfig] = Field(
        default_factory=list,
        description="Declared workspaces",
    )

    @model_validator(mode="after")
    def validate_unique_workspaces(self) -> "SyncConfig":
        """Reject duplicate record addresses."""
        seen = set()
        for workspace in self.workspaces:
            if workspace.address in seen:
                raise ValueError(f"Duplicate workspace declaration: {workspace.address}")
            seen.add(workspace.address)
        return self
