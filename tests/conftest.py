"""Shared pytest fixtures for the workspace sync tests."""

import math
from typing import Dict, Optional
from unittest.mock import AsyncMock

import pytest

from tfe_sync.clients.exceptions import ResourceNotFoundError
from tfe_sync.clients.tfe import (
    VCSRepo,
    Workspace,
    WorkspaceCreateOptions,
    WorkspacePage,
    WorkspaceUpdateOptions,
)
from tfe_sync.config.models import WorkspaceConfig
from tfe_sync.core.state import StateManager

DEFAULT_TERRAFORM_VERSION = "1.6.0"
DEFAULT_BRANCH = "main"


class FakeTFEClient:
    """In-memory stand-in for TFEClient.

    Every remote operation is an AsyncMock wrapping a working implementation,
    so tests can both rely on realistic behaviour and assert on calls, or
    override a single operation with ``side_effect``.
    """

    def __init__(self, page_size: int = 2) -> None:
        self.page_size = page_size
        self.workspaces: Dict[str, Workspace] = {}
        self._counter = 0

        self.create_workspace = AsyncMock(side_effect=self._create)
        self.read_workspace = AsyncMock(side_effect=self._read)
        self.update_workspace = AsyncMock(side_effect=self._update)
        self.delete_workspace = AsyncMock(side_effect=self._delete)
        self.list_workspaces = AsyncMock(side_effect=self._list)
        self.assign_ssh_key = AsyncMock(side_effect=self._assign)
        self.unassign_ssh_key = AsyncMock(side_effect=self._unassign)

    async def __aenter__(self) -> "FakeTFEClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def get_stats(self) -> Dict[str, int]:
        return {"request_count": 0}

    def add(self, organization: str, name: str, **attributes) -> Workspace:
        """Seed a workspace directly into the fake remote."""
        self._counter += 1
        workspace = Workspace(
            id=attributes.pop("id", f"ws-{self._counter:04d}"),
            name=name,
            organization=organization,
            **attributes,
        )
        self.workspaces[workspace.id] = workspace
        return workspace

    def rename(self, external_id: str, new_name: str) -> None:
        """Rename a workspace out of band."""
        workspace = self.workspaces[external_id]
        self.workspaces[external_id] = workspace.model_copy(update={"name": new_name})

    def find(self, organization: str, name: str) -> Optional[Workspace]:
        for workspace in self.workspaces.values():
            if workspace.organization == organization and workspace.name == name:
                return workspace
        return None

    async def _create(self, organization: str, options: WorkspaceCreateOptions) -> Workspace:
        vcs_repo = None
        if options.vcs_repo is not None:
            vcs_repo = VCSRepo(
                identifier=options.vcs_repo.identifier,
                branch=options.vcs_repo.branch or DEFAULT_BRANCH,
                ingress_submodules=options.vcs_repo.ingress_submodules,
                oauth_token_id=options.vcs_repo.oauth_token_id,
            )
        return self.add(
            organization,
            options.name,
            auto_apply=options.auto_apply,
            file_triggers_enabled=options.file_triggers_enabled,
            operations=options.operations,
            queue_all_runs=options.queue_all_runs,
            terraform_version=options.terraform_version or DEFAULT_TERRAFORM_VERSION,
            trigger_prefixes=options.trigger_prefixes or [],
            working_directory=options.working_directory or "",
            vcs_repo=vcs_repo,
        )

    async def _read(self, organization: str, name: str) -> Workspace:
        workspace = self.find(organization, name)
        if workspace is None:
            raise ResourceNotFoundError(
                f"Workspace not found: {organization}/{name}", status_code=404
            )
        return workspace

    async def _update(
        self, organization: str, name: str, options: WorkspaceUpdateOptions
    ) -> Workspace:
        workspace = await self._read(organization, name)
        changes = options.model_dump(exclude_none=True)
        if "vcs_repo" in changes:
            repo = changes["vcs_repo"]
            changes["vcs_repo"] = VCSRepo(
                identifier=repo["identifier"],
                branch=repo.get("branch") or DEFAULT_BRANCH,
                ingress_submodules=repo.get("ingress_submodules", False),
                oauth_token_id=repo["oauth_token_id"],
            )
        updated = workspace.model_copy(update=changes)
        self.workspaces[updated.id] = updated
        return updated

    async def _delete(self, organization: str, name: str) -> None:
        workspace = await self._read(organization, name)
        del self.workspaces[workspace.id]

    async def _list(
        self, organization: str, page_number: int = 1, page_size: Optional[int] = None
    ) -> WorkspacePage:
        size = page_size or self.page_size
        items = [w for w in self.workspaces.values() if w.organization == organization]
        total_pages = max(1, math.ceil(len(items) / size))
        start = (page_number - 1) * size
        return WorkspacePage(
            items=items[start:start + size],
            current_page=page_number,
            next_page=page_number + 1 if page_number < total_pages else None,
            total_pages=total_pages,
            total_count=len(items),
        )

    async def _assign(self, workspace_id: str, ssh_key_id: str) -> Workspace:
        return self._set_key(workspace_id, ssh_key_id)

    async def _unassign(self, workspace_id: str) -> Workspace:
        return self._set_key(workspace_id, None)

    def _set_key(self, workspace_id: str, ssh_key_id: Optional[str]) -> Workspace:
        if workspace_id not in self.workspaces:
            raise ResourceNotFoundError(f"Workspace not found: {workspace_id}", status_code=404)
        updated = self.workspaces[workspace_id].model_copy(update={"ssh_key_id": ssh_key_id})
        self.workspaces[workspace_id] = updated
        return updated


@pytest.fixture
def fake_client():
    """Create an empty in-memory TFE API."""
    return FakeTFEClient()


@pytest.fixture
def workspace_config():
    """Create a minimal declared workspace."""
    return WorkspaceConfig(address="web", name="web", organization="acme", auto_apply=True)


@pytest.fixture
def state_manager(tmp_path):
    """Create a state manager backed by a temporary directory."""
    return StateManager(tmp_path / "state")
