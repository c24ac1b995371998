"""Workspace lifecycle: create, read, update, delete and import."""

from enum import Enum
from typing import Optional

import structlog

from tfe_sync.clients.exceptions import (
    APIError,
    ForceNewError,
    IdentifierError,
    ResourceNotFoundError,
    SSHKeyLinkError,
    WorkspaceCreateError,
    WorkspaceDeleteError,
    WorkspaceUpdateError,
)
from tfe_sync.clients.tfe import TFEClient, Workspace
from tfe_sync.config.models import WorkspaceConfig
from tfe_sync.core.state import VCSRepoState, WorkspaceState
from tfe_sync.resources.identifiers import pack_workspace, unpack_workspace_id
from tfe_sync.resources.mutations import (
    apply_update,
    build_create_options,
    changed_fields,
    ssh_key_changed,
    sync_ssh_key,
)
from tfe_sync.resources.reconcile import reconcile_workspace

logger = structlog.get_logger(__name__)


class PlannedAction(str, Enum):
    """Action needed to bring a workspace in line with its declaration."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    NOOP = "noop"


def _declares_branch(config: Optional[WorkspaceConfig]) -> bool:
    return bool(config is not None and config.vcs_repo is not None and config.vcs_repo.branch)


def state_from_workspace(
    identifier: str,
    workspace: Workspace,
    keep_branch: bool = False,
) -> WorkspaceState:
    """Build a local record from a fetched workspace.

    The VCS branch is only recorded when ``keep_branch`` is set, i.e. when
    a branch was configured. Otherwise the remote default branch would show
    up as a difference against an undeclared branch.
    """
    vcs_repo = None
    if workspace.vcs_repo is not None:
        vcs_repo = VCSRepoState(
            identifier=workspace.vcs_repo.identifier,
            branch=workspace.vcs_repo.branch if keep_branch else "",
            ingress_submodules=workspace.vcs_repo.ingress_submodules,
            oauth_token_id=workspace.vcs_repo.oauth_token_id,
        )

    return WorkspaceState(
        id=identifier,
        external_id=workspace.id,
        name=workspace.name,
        organization=workspace.organization or "",
        auto_apply=workspace.auto_apply,
        file_triggers_enabled=workspace.file_triggers_enabled,
        operations=workspace.operations,
        queue_all_runs=workspace.queue_all_runs,
        ssh_key_id=workspace.ssh_key_id or "",
        terraform_version=workspace.terraform_version,
        trigger_prefixes=list(workspace.trigger_prefixes),
        working_directory=workspace.working_directory,
        vcs_repo=vcs_repo,
    )


class WorkspaceResource:
    """Manages a single workspace type against the remote API.

    Every entry point returns a new ``WorkspaceState`` (or ``None`` when the
    workspace is absent) and never mutates the record passed in, so a raised
    error leaves the caller's record untouched.
    """

    def __init__(self, client: TFEClient) -> None:
        self.client = client
        self._logger = logger.bind(resource_type="workspace")

    def plan(
        self,
        config: WorkspaceConfig,
        state: Optional[WorkspaceState],
    ) -> PlannedAction:
        """Work out which action ``apply`` would take, without calling the API."""
        if state is None:
            return PlannedAction.CREATE
        if state.organization and config.organization != state.organization:
            return PlannedAction.REPLACE
        if changed_fields(config, state) or ssh_key_changed(config, state):
            return PlannedAction.UPDATE
        return PlannedAction.NOOP

    async def create(self, config: WorkspaceConfig) -> Optional[WorkspaceState]:
        """Create a workspace and link its SSH key if one is declared.

        Returns:
            The refreshed record, or None if the workspace vanished again
            before it could be read back

        Raises:
            WorkspaceCreateError: If the workspace could not be created
            SSHKeyLinkError: If the workspace was created but the SSH key
                could not be assigned; ``error.state`` holds its record
        """
        name = config.name
        organization = config.organization
        options = build_create_options(config)

        self._logger.debug("Create workspace", workspace=name, organization=organization)
        try:
            workspace = await self.client.create_workspace(organization, options)
        except APIError as e:
            raise WorkspaceCreateError(
                f"Error creating workspace {name} for organization {organization}: {e}",
                organization=organization,
                workspace_name=name,
                operation="create",
            ) from e

        try:
            identifier = pack_workspace(workspace)
        except IdentifierError as e:
            raise WorkspaceCreateError(
                f"Error creating ID for workspace {name}: {e}",
                organization=organization,
                workspace_name=name,
                operation="create",
            ) from e

        state = state_from_workspace(identifier, workspace, keep_branch=_declares_branch(config))
        self._logger.info("Created workspace", id=identifier, external_id=workspace.id)

        if config.ssh_key_id:
            try:
                await sync_ssh_key(
                    self.client, workspace.id, config.ssh_key_id, name, organization
                )
            except SSHKeyLinkError as e:
                e.state = state
                raise

        return await self._read(state.id, state.external_id, _declares_branch(config))

    async def read(self, state: WorkspaceState) -> Optional[WorkspaceState]:
        """Refresh a record from the remote API.

        Returns:
            The refreshed record (with a re-packed identifier), or None if
            the workspace no longer exists
        """
        keep_branch = state.vcs_repo is not None and bool(state.vcs_repo.branch)
        return await self._read(state.id, state.external_id, keep_branch)

    async def update(
        self,
        state: WorkspaceState,
        config: WorkspaceConfig,
    ) -> Optional[WorkspaceState]:
        """Apply a changed declaration to an existing workspace.

        Raises:
            ForceNewError: If the organization changed
            WorkspaceUpdateError: If the primary update fails
            SSHKeyLinkError: If linking or unlinking the SSH key fails
        """
        organization, name = unpack_workspace_id(state.id)

        if state.organization and config.organization != state.organization:
            raise ForceNewError(
                f"Cannot move workspace {name} from organization {state.organization} "
                f"to {config.organization}; it must be replaced",
                organization=organization,
                workspace_name=name,
                operation="update",
            )

        current = state
        workspace = await apply_update(self.client, organization, name, config, state)
        if workspace is not None:
            try:
                identifier = pack_workspace(workspace)
            except IdentifierError as e:
                raise WorkspaceUpdateError(
                    f"Error creating ID for workspace {name}: {e}",
                    organization=organization,
                    workspace_name=name,
                    operation="update",
                ) from e
            current = state_from_workspace(
                identifier, workspace, keep_branch=_declares_branch(config)
            )
            self._logger.info("Updated workspace", id=identifier, previous_id=state.id)

        if ssh_key_changed(config, state):
            # Addressed by the previously recorded external ID, which
            # survives a rename done by the update above.
            try:
                await sync_ssh_key(
                    self.client, state.external_id, config.ssh_key_id, name, organization
                )
            except SSHKeyLinkError as e:
                if current is not state:
                    e.state = current
                raise

        return await self._read(current.id, current.external_id, _declares_branch(config))

    async def delete(self, state: WorkspaceState) -> None:
        """Delete a workspace. A workspace that is already gone is not an error.

        Raises:
            WorkspaceDeleteError: On any remote failure other than not-found
        """
        organization, name = unpack_workspace_id(state.id)

        self._logger.debug("Delete workspace", workspace=name, organization=organization)
        try:
            await self.client.delete_workspace(organization, name)
        except ResourceNotFoundError:
            self._logger.info(
                "Workspace already deleted", workspace=name, organization=organization
            )
            return
        except APIError as e:
            raise WorkspaceDeleteError(
                f"Error deleting workspace {name} from organization {organization}: {e}",
                organization=organization,
                workspace_name=name,
                operation="delete",
            ) from e

        self._logger.info("Deleted workspace", workspace=name, organization=organization)

    async def import_state(self, identifier: str) -> Optional[WorkspaceState]:
        """Adopt an existing workspace by identifier (either format)."""
        unpack_workspace_id(identifier)
        return await self._read(identifier, "", keep_branch=False)

    async def _read(
        self,
        identifier: str,
        external_id: str,
        keep_branch: bool,
    ) -> Optional[WorkspaceState]:
        result = await reconcile_workspace(self.client, identifier, external_id)
        if result.gone:
            return None
        return state_from_workspace(result.identifier, result.workspace, keep_branch=keep_branch)
