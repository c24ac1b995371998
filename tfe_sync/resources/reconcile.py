"""Drift detection for workspaces renamed or removed out of band."""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from tfe_sync.clients.exceptions import (
    APIError,
    ResourceNotFoundError,
    WorkspaceReadError,
)
from tfe_sync.clients.tfe import TFEClient, Workspace, WorkspacePage
from tfe_sync.resources.identifiers import (
    is_legacy_workspace_id,
    pack_workspace,
    unpack_workspace_id,
)

logger = structlog.get_logger(__name__)

PageFetcher = Callable[[str, int, Optional[int]], Awaitable[WorkspacePage]]


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of reconciling a persisted identifier with the remote API.

    ``workspace`` is ``None`` when the workspace no longer exists.
    """

    workspace: Optional[Workspace]
    identifier: Optional[str] = None
    previous_identifier: str = ""
    recovered_by_scan: bool = False

    @property
    def gone(self) -> bool:
        return self.workspace is None

    @property
    def renamed(self) -> bool:
        return self.identifier is not None and self.identifier != self.previous_identifier


async def find_workspace_by_external_id(
    list_page: PageFetcher,
    organization: str,
    external_id: str,
    page_size: Optional[int] = None,
) -> Optional[Workspace]:
    """Scan every page of an organization's workspaces for an external ID.

    The scan is bounded by the total page count reported with each page, so
    it terminates even if the listing shifts underneath it. A miss is final.

    Args:
        list_page: Async callable ``(organization, page_number, page_size)``
            returning a ``WorkspacePage``
        organization: Organization to scan
        external_id: Stable workspace ID to look for
        page_size: Optional page size passed through to ``list_page``

    Returns:
        The matching workspace, or None if no page contains it
    """
    if not external_id:
        return None

    page_number = 1
    pages_seen = 0
    while True:
        page = await list_page(organization, page_number, page_size)
        pages_seen += 1

        for workspace in page.items:
            if workspace.id == external_id:
                logger.debug(
                    "Found workspace by external ID",
                    organization=organization,
                    external_id=external_id,
                    page=page.current_page,
                )
                return workspace

        if page.current_page >= page.total_pages or not page.next_page:
            break
        # Guards against a next-page pointer that does not advance
        if pages_seen >= page.total_pages or page.next_page <= page.current_page:
            break
        page_number = page.next_page

    return None


async def reconcile_workspace(
    client: TFEClient,
    identifier: str,
    external_id: str = "",
) -> ReconcileResult:
    """Fetch the current remote state behind a persisted identifier.

    Falls back to an external ID scan when the name lookup reports
    not-found, which recovers workspaces renamed outside of this tool.

    Raises:
        IdentifierError: If the identifier is malformed
        WorkspaceReadError: On any remote failure other than not-found
    """
    organization, name = unpack_workspace_id(identifier)
    log = logger.bind(organization=organization, workspace=name)

    log.debug("Read configuration of workspace")
    recovered_by_scan = False
    try:
        workspace: Optional[Workspace] = await client.read_workspace(organization, name)
    except ResourceNotFoundError:
        # Renamed or really gone; only a scan by external ID can tell.
        log.debug("Workspace not found by name, scanning by external ID", external_id=external_id)
        try:
            workspace = await find_workspace_by_external_id(
                client.list_workspaces, organization, external_id
            )
        except APIError as e:
            raise WorkspaceReadError(
                f"Error retrieving workspaces for organization {organization}: {e}",
                organization=organization,
                workspace_name=name,
                operation="list",
            ) from e
        recovered_by_scan = workspace is not None
    except APIError as e:
        raise WorkspaceReadError(
            f"Error reading configuration of workspace {name}: {e}",
            organization=organization,
            workspace_name=name,
            operation="read",
        ) from e

    if workspace is None:
        log.info("Workspace no longer exists")
        return ReconcileResult(workspace=None, previous_identifier=identifier)

    new_identifier = pack_workspace(workspace)
    result = ReconcileResult(
        workspace=workspace,
        identifier=new_identifier,
        previous_identifier=identifier,
        recovered_by_scan=recovered_by_scan,
    )

    if result.renamed:
        log.info(
            "Workspace identifier updated",
            new_id=new_identifier,
            legacy_format=is_legacy_workspace_id(identifier),
            recovered_by_scan=recovered_by_scan,
        )

    return result
