"""Workspace identifier encoding.

Identifiers are written as ``<organization>/<name>``. The older
``<name>|<organization>`` form is still accepted when decoding but is never
produced.
"""

from typing import Optional, Tuple

from tfe_sync.clients.exceptions import IdentifierError
from tfe_sync.clients.tfe import Workspace

SEPARATOR = "/"
LEGACY_SEPARATOR = "|"


def pack_workspace_id(organization: Optional[str], name: str) -> str:
    """Encode an organization and workspace name into an identifier."""
    if not organization:
        raise IdentifierError("no organization in workspace response")
    return f"{organization}{SEPARATOR}{name}"


def pack_workspace(workspace: Workspace) -> str:
    """Encode the identifier of a workspace fetched from the API."""
    return pack_workspace_id(workspace.organization, workspace.name)


def unpack_workspace_id(identifier: str) -> Tuple[str, str]:
    """Decode an identifier into ``(organization, name)``.

    Raises:
        IdentifierError: If the identifier matches neither format
    """
    if LEGACY_SEPARATOR in identifier:
        name, organization = identifier.split(LEGACY_SEPARATOR, 1)
        if name and organization:
            return organization, name
    else:
        parts = identifier.split(SEPARATOR)
        if len(parts) == 2 and all(parts):
            return parts[0], parts[1]

    raise IdentifierError(
        f"invalid workspace ID format: {identifier} "
        f"(expected <ORGANIZATION>{SEPARATOR}<WORKSPACE>)",
        identifier=identifier,
    )


def is_legacy_workspace_id(identifier: str) -> bool:
    """Return True for identifiers in the legacy ``name|org`` format."""
    return LEGACY_SEPARATOR in identifier
