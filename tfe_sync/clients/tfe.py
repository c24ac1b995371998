"""Terraform Cloud / Enterprise API client for workspace management."""

from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from tfe_sync.clients.base import BaseAPIClient
from tfe_sync.clients.exceptions import APIError, ResourceNotFoundError

logger = structlog.get_logger(__name__)


class VCSRepo(BaseModel):
    """VCS repository linked to a workspace."""

    identifier: str
    branch: str = ""
    ingress_submodules: bool = False
    oauth_token_id: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "VCSRepo":
        """Build from the ``vcs-repo`` attribute of a workspace."""
        return cls(
            identifier=data.get("identifier") or "",
            branch=data.get("branch") or "",
            ingress_submodules=bool(data.get("ingress-submodules", False)),
            oauth_token_id=data.get("oauth-token-id") or "",
        )


class Workspace(BaseModel):
    """Workspace as returned by the remote API."""

    id: str
    name: str
    organization: Optional[str] = None
    auto_apply: bool = False
    file_triggers_enabled: bool = True
    operations: bool = True
    queue_all_runs: bool = True
    terraform_version: Optional[str] = None
    trigger_prefixes: List[str] = Field(default_factory=list)
    working_directory: str = ""
    ssh_key_id: Optional[str] = None
    vcs_repo: Optional[VCSRepo] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Workspace":
        """Build from a JSON:API ``workspaces`` resource object."""
        attributes = data.get("attributes") or {}
        relationships = data.get("relationships") or {}

        organization = _relationship_id(relationships, "organization")
        ssh_key_id = _relationship_id(relationships, "ssh-key")

        vcs_repo = None
        if attributes.get("vcs-repo"):
            vcs_repo = VCSRepo.from_api(attributes["vcs-repo"])

        return cls(
            id=data["id"],
            name=attributes.get("name", ""),
            organization=organization,
            auto_apply=attributes.get("auto-apply", False),
            file_triggers_enabled=attributes.get("file-triggers-enabled", True),
            operations=attributes.get("operations", True),
            queue_all_runs=attributes.get("queue-all-runs", True),
            terraform_version=attributes.get("terraform-version"),
            trigger_prefixes=list(attributes.get("trigger-prefixes") or []),
            working_directory=attributes.get("working-directory") or "",
            ssh_key_id=ssh_key_id,
            vcs_repo=vcs_repo,
        )


def _relationship_id(relationships: Dict[str, Any], key: str) -> Optional[str]:
    relationship = relationships.get(key) or {}
    data = relationship.get("data") or {}
    return data.get("id")


class WorkspacePage(BaseModel):
    """A single page of a workspace listing."""

    items: List[Workspace] = Field(default_factory=list)
    current_page: int = 1
    next_page: Optional[int] = None
    total_pages: int = 1
    total_count: int = 0


class VCSRepoOptions(BaseModel):
    """VCS repository options for create and update requests."""

    model_config = ConfigDict(populate_by_name=True)

    identifier: str
    oauth_token_id: str = Field(alias="oauth-token-id")
    ingress_submodules: bool = Field(False, alias="ingress-submodules")
    branch: Optional[str] = None


class WorkspaceOptions(BaseModel):
    """Attributes sent when creating or updating a workspace.

    Fields left as ``None`` are omitted from the request body, so the remote
    side keeps its current value (or its default on creation).
    """

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    auto_apply: Optional[bool] = Field(None, alias="auto-apply")
    file_triggers_enabled: Optional[bool] = Field(None, alias="file-triggers-enabled")
    operations: Optional[bool] = None
    queue_all_runs: Optional[bool] = Field(None, alias="queue-all-runs")
    terraform_version: Optional[str] = Field(None, alias="terraform-version")
    trigger_prefixes: Optional[List[str]] = Field(None, alias="trigger-prefixes")
    working_directory: Optional[str] = Field(None, alias="working-directory")
    vcs_repo: Optional[VCSRepoOptions] = Field(None, alias="vcs-repo")

    def to_payload(self) -> Dict[str, Any]:
        """Render as a JSON:API request document."""
        return {
            "data": {
                "type": "workspaces",
                "attributes": self.model_dump(by_alias=True, exclude_none=True),
            }
        }


class WorkspaceCreateOptions(WorkspaceOptions):
    """Options for creating a workspace. ``name`` is required."""

    name: str


class WorkspaceUpdateOptions(WorkspaceOptions):
    """Options for updating a workspace."""
    pass


class TFEClient(BaseAPIClient):
    """Terraform Cloud / Enterprise API v2 client for workspaces."""

    content_type = "application/vnd.api+json"

    def __init__(
        self,
        token: SecretStr,
        hostname: str = "app.terraform.io",
        timeout_seconds: int = 30,
        rate_limit_per_minute: int = 1800,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        page_size: int = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize TFE client.

        Args:
            token: API token (user, team or organization token)
            hostname: Terraform Cloud / Enterprise hostname
            timeout_seconds: Request timeout in seconds
            rate_limit_per_minute: Maximum requests per minute
            max_retries: Maximum retry attempts
            retry_delay_seconds: Initial retry delay
            page_size: Page size used when listing workspaces
            transport: Optional httpx transport (used for testing)
        """
        self.hostname = hostname.replace("https://", "").replace("http://", "").rstrip("/")
        if not self.hostname:
            raise ValueError("TFE hostname must not be empty")

        self._token = token
        self.page_size = page_size

        super().__init__(
            base_url=f"https://{self.hostname}/api/v2",
            timeout_seconds=timeout_seconds,
            rate_limit_per_minute=rate_limit_per_minute,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            transport=transport,
        )

        self._logger = logger.bind(tfe_hostname=self.hostname)

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get TFE authentication headers."""
        return {
            "Authorization": f"Bearer {self._token.get_secret_value()}",
        }

    async def health_check(self) -> bool:
        """Check if the TFE API is accessible."""
        try:
            await self._request("GET", "/ping")
            return True
        except APIError as e:
            self._logger.error("TFE health check failed", error=str(e))
            return False

    # Workspace Management Methods

    async def create_workspace(
        self, organization: str, options: WorkspaceCreateOptions
    ) -> Workspace:
        """Create a workspace in an organization."""
        response_data = await self.with_retry(
            "create_workspace",
            lambda: self._request_json(
                "POST",
                f"/organizations/{organization}/workspaces",
                json_data=options.to_payload(),
            ),
        )
        return self._workspace_from_document(response_data)

    async def read_workspace(self, organization: str, name: str) -> Workspace:
        """Read a workspace by organization and name.

        Raises:
            ResourceNotFoundError: If the workspace does not exist
        """
        try:
            response_data = await self.with_retry(
                "read_workspace",
                lambda: self._request_json(
                    "GET", f"/organizations/{organization}/workspaces/{name}"
                ),
            )
        except ResourceNotFoundError as e:
            raise ResourceNotFoundError(
                f"Workspace not found: {organization}/{name}",
                status_code=e.status_code,
                response_text=e.response_text,
            ) from e
        return self._workspace_from_document(response_data)

    async def update_workspace(
        self, organization: str, name: str, options: WorkspaceUpdateOptions
    ) -> Workspace:
        """Update a workspace addressed by organization and name."""
        response_data = await self.with_retry(
            "update_workspace",
            lambda: self._request_json(
                "PATCH",
                f"/organizations/{organization}/workspaces/{name}",
                json_data=options.to_payload(),
            ),
        )
        return self._workspace_from_document(response_data)

    async def delete_workspace(self, organization: str, name: str) -> None:
        """Delete a workspace addressed by organization and name.

        Raises:
            ResourceNotFoundError: If the workspace does not exist
        """
        await self.with_retry(
            "delete_workspace",
            lambda: self._request(
                "DELETE", f"/organizations/{organization}/workspaces/{name}"
            ),
        )

    async def list_workspaces(
        self,
        organization: str,
        page_number: int = 1,
        page_size: Optional[int] = None,
    ) -> WorkspacePage:
        """Fetch a single page of the workspaces in an organization."""
        params = {
            "page[number]": page_number,
            "page[size]": page_size or self.page_size,
        }
        response_data = await self.with_retry(
            "list_workspaces",
            lambda: self._request_json(
                "GET", f"/organizations/{organization}/workspaces", params=params
            ),
        )

        items = response_data.get("data")
        if not isinstance(items, list):
            raise APIError(f"Expected list response, got {type(items).__name__}")

        pagination = (response_data.get("meta") or {}).get("pagination") or {}
        return WorkspacePage(
            items=[Workspace.from_api(item) for item in items],
            current_page=pagination.get("current-page", page_number),
            next_page=pagination.get("next-page"),
            total_pages=pagination.get("total-pages", page_number),
            total_count=pagination.get("total-count", len(items)),
        )

    async def assign_ssh_key(self, workspace_id: str, ssh_key_id: str) -> Workspace:
        """Assign an SSH key to a workspace addressed by its external ID."""
        return await self._set_ssh_key("assign_ssh_key", workspace_id, ssh_key_id)

    async def unassign_ssh_key(self, workspace_id: str) -> Workspace:
        """Remove the SSH key from a workspace addressed by its external ID."""
        return await self._set_ssh_key("unassign_ssh_key", workspace_id, None)

    async def _set_ssh_key(
        self, operation_name: str, workspace_id: str, ssh_key_id: Optional[str]
    ) -> Workspace:
        payload = {
            "data": {
                "type": "workspaces",
                "attributes": {"id": ssh_key_id},
            }
        }
        response_data = await self.with_retry(
            operation_name,
            lambda: self._request_json(
                "PATCH",
                f"/workspaces/{workspace_id}/relationships/ssh-key",
                json_data=payload,
            ),
        )
        return self._workspace_from_document(response_data)

    @staticmethod
    def _workspace_from_document(document: Dict[str, Any]) -> Workspace:
        data = document.get("data")
        if not isinstance(data, dict):
            raise APIError("Response document has no workspace data")
        return Workspace.from_api(data)
