"""Workspace resource management."""

from tfe_sync.resources.identifiers import (
    pack_workspace,
    pack_workspace_id,
    unpack_workspace_id,
)
from tfe_sync.resources.reconcile import (
    ReconcileResult,
    find_workspace_by_external_id,
    reconcile_workspace,
)
from tfe_sync.resources.workspace import PlannedAction, WorkspaceResource

__all__ = [
    "PlannedAction",
    "ReconcileResult",
    "WorkspaceResource",
    "find_workspace_by_external_id",
    "pack_workspace",
    "pack_workspace_id",
    "reconcile_workspace",
    "unpack_workspace_id",
]
