"""Request building and sequencing for workspace create/update."""

from typing import Optional, Set

import structlog

from tfe_sync.clients.exceptions import APIError, SSHKeyLinkError, WorkspaceUpdateError
from tfe_sync.clients.tfe import (
    TFEClient,
    VCSRepoOptions,
    Workspace,
    WorkspaceCreateOptions,
    WorkspaceUpdateOptions,
)
from tfe_sync.config.models import VCSRepoConfig, WorkspaceConfig
from tfe_sync.core.state import VCSRepoState, WorkspaceState

logger = structlog.get_logger(__name__)

# Compared as-is between declaration and record; see changed_fields.
_PLAIN_FIELDS = ("name", "auto_apply", "queue_all_runs", "file_triggers_enabled", "operations")


def build_create_options(config: WorkspaceConfig) -> WorkspaceCreateOptions:
    """Build the creation request from a declared workspace."""
    options = WorkspaceCreateOptions(
        name=config.name,
        auto_apply=config.auto_apply,
        file_triggers_enabled=config.file_triggers_enabled,
        operations=config.operations,
        queue_all_runs=config.queue_all_runs,
        # Always sent on create; an undeclared directory becomes "".
        working_directory=config.working_directory if config.working_directory is not None else "",
    )

    if config.terraform_version:
        options.terraform_version = config.terraform_version

    if config.trigger_prefixes:
        options.trigger_prefixes = list(config.trigger_prefixes)

    if config.vcs_repo is not None:
        options.vcs_repo = VCSRepoOptions(
            identifier=config.vcs_repo.identifier,
            oauth_token_id=config.vcs_repo.oauth_token_id,
            ingress_submodules=config.vcs_repo.ingress_submodules,
        )
        # Only set the branch if one is configured.
        if config.vcs_repo.branch:
            options.vcs_repo.branch = config.vcs_repo.branch

    return options


def build_update_options(config: WorkspaceConfig) -> WorkspaceUpdateOptions:
    """Build the update request from a declared workspace."""
    options = WorkspaceUpdateOptions(
        name=config.name,
        auto_apply=config.auto_apply,
        file_triggers_enabled=config.file_triggers_enabled,
        operations=config.operations,
        queue_all_runs=config.queue_all_runs,
    )

    if config.terraform_version:
        options.terraform_version = config.terraform_version

    if config.trigger_prefixes:
        options.trigger_prefixes = list(config.trigger_prefixes)

    if config.working_directory is not None:
        options.working_directory = config.working_directory

    if config.vcs_repo is not None:
        options.vcs_repo = VCSRepoOptions(
            identifier=config.vcs_repo.identifier,
            oauth_token_id=config.vcs_repo.oauth_token_id,
            ingress_submodules=config.vcs_repo.ingress_submodules,
            branch=config.vcs_repo.branch,
        )

    return options


def _vcs_repo_matches(declared: Optional[VCSRepoConfig], recorded: Optional[VCSRepoState]) -> bool:
    if declared is None or recorded is None:
        return declared is None and recorded is None
    return (
        declared.identifier == recorded.identifier
        and declared.oauth_token_id == recorded.oauth_token_id
        and declared.ingress_submodules == recorded.ingress_submodules
        and declared.branch == recorded.branch
    )


def changed_fields(config: WorkspaceConfig, state: WorkspaceState) -> Set[str]:
    """Return the updatable fields whose declared value differs from the record.

    ``ssh_key_id`` is not part of this set; see ``ssh_key_changed``.
    ``terraform_version`` and ``working_directory`` are taken from the remote
    side when not declared, so leaving them out never counts as a change.
    """
    changed = set()

    for field_name in _PLAIN_FIELDS:
        if getattr(config, field_name) != getattr(state, field_name):
            changed.add(field_name)

    if config.terraform_version is not None and config.terraform_version != state.terraform_version:
        changed.add("terraform_version")

    if config.working_directory is not None and config.working_directory != state.working_directory:
        changed.add("working_directory")

    if list(config.trigger_prefixes or []) != list(state.trigger_prefixes):
        changed.add("trigger_prefixes")

    if not _vcs_repo_matches(config.vcs_repo, state.vcs_repo):
        changed.add("vcs_repo")

    return changed


def ssh_key_changed(config: WorkspaceConfig, state: WorkspaceState) -> bool:
    return config.ssh_key_id != state.ssh_key_id


async def apply_update(
    client: TFEClient,
    organization: str,
    name: str,
    config: WorkspaceConfig,
    state: WorkspaceState,
) -> Optional[Workspace]:
    """Issue the primary update call if any updatable field changed.

    Returns:
        The updated workspace, or None when no update was needed

    Raises:
        WorkspaceUpdateError: If the update call fails
    """
    changes = changed_fields(config, state)
    if not changes:
        logger.debug("No updatable fields changed", organization=organization, workspace=name)
        return None

    options = build_update_options(config)
    logger.debug(
        "Update workspace",
        organization=organization,
        workspace=name,
        changed=sorted(changes),
        options=options.model_dump(exclude_none=True),
    )

    try:
        return await client.update_workspace(organization, name, options)
    except APIError as e:
        raise WorkspaceUpdateError(
            f"Error updating workspace {name} for organization {organization}: {e}",
            organization=organization,
            workspace_name=name,
            operation="update",
        ) from e


async def sync_ssh_key(
    client: TFEClient,
    external_id: str,
    ssh_key_id: str,
    workspace_name: str,
    organization: Optional[str] = None,
) -> None:
    """Assign ``ssh_key_id`` to the workspace, or unassign when it is empty.

    Raises:
        SSHKeyLinkError: If the assign/unassign call fails
    """
    if ssh_key_id:
        try:
            await client.assign_ssh_key(external_id, ssh_key_id)
        except APIError as e:
            raise SSHKeyLinkError(
                f"Error assigning SSH key to workspace {workspace_name}: {e}",
                organization=organization,
                workspace_name=workspace_name,
                operation="assign_ssh_key",
            ) from e
        logger.info("Assigned SSH key", workspace=workspace_name, ssh_key_id=ssh_key_id)
    else:
        try:
            await client.unassign_ssh_key(external_id)
        except APIError as e:
            raise SSHKeyLinkError(
                f"Error unassigning SSH key from workspace {workspace_name}: {e}",
                organization=organization,
                workspace_name=workspace_name,
                operation="unassign_ssh_key",
            ) from e
        logger.info("Unassigned SSH key", workspace=workspace_name)
