"""Exception classes for API clients and workspace lifecycle operations."""

from typing import Any, Optional


class APIError(Exception):
    """Base class for failures talking to the remote API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            response_text: Response body text if available
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.response_text:
            # Truncate response text for readability
            response_preview = self.response_text[:200]
            if len(self.response_text) > 200:
                response_preview += "..."
            parts.append(f"Response: {response_preview}")
        return " | ".join(parts)


class AuthenticationError(APIError):
    """401: the API token is missing, invalid or expired."""
    pass


class AuthorizationError(APIError):
    """403: the token lacks permission for the organization or workspace."""
    pass


class RateLimitError(APIError):
    """429. ``retry_after`` carries the Retry-After header in seconds."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> None:
        super().__init__(message, status_code, response_text)
        self.retry_after = retry_after


class ClientError(APIError):
    """Any other 4xx response; the request should not be retried as-is."""
    pass


class ResourceNotFoundError(ClientError):
    """404. Lifecycle code treats this as "absent" rather than a failure."""
    pass


class ConflictError(ClientError):
    """409, e.g. a workspace name already taken in the organization."""
    pass


class ServerError(APIError):
    """5xx response. Retried by ``with_retry``."""
    pass


class NetworkError(APIError):
    """No HTTP response was received (connect, read or timeout failure)."""
    pass


class WorkspaceError(Exception):
    """Base exception for workspace lifecycle errors."""

    def __init__(
        self,
        message: str,
        organization: Optional[str] = None,
        workspace_name: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        """Initialize workspace error.

        Args:
            message: Error message
            organization: Organization the workspace belongs to
            workspace_name: Name of the workspace being operated on
            operation: Lifecycle operation that failed (create, read, ...)
        """
        super().__init__(message)
        self.message = message
        self.organization = organization
        self.workspace_name = workspace_name
        self.operation = operation


class IdentifierError(WorkspaceError):
    """Raised when a persisted workspace identifier is malformed."""

    def __init__(self, message: str, identifier: Optional[str] = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class WorkspaceCreateError(WorkspaceError):
    """Error creating a workspace."""
    pass


class WorkspaceReadError(WorkspaceError):
    """Error reading a workspace (other than not-found)."""
    pass


class WorkspaceUpdateError(WorkspaceError):
    """Error updating a workspace."""
    pass


class WorkspaceDeleteError(WorkspaceError):
    """Error deleting a workspace."""
    pass


class SSHKeyLinkError(WorkspaceError):
    """Error assigning or unassigning an SSH key after the primary mutation.

    The workspace itself already exists (or was already changed) remotely
    when this is raised. ``state`` holds the record of that workspace when
    the primary create or update went through, so callers can persist it.
    """

    def __init__(
        self,
        message: str,
        organization: Optional[str] = None,
        workspace_name: Optional[str] = None,
        operation: Optional[str] = None,
        state: Optional[Any] = None,
    ) -> None:
        super().__init__(message, organization, workspace_name, operation)
        self.state = state


class ForceNewError(WorkspaceError):
    """Raised when an immutable attribute changes and the workspace must be replaced."""
    pass
