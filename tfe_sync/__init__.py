"""TFE Workspace Sync - declarative workspace lifecycle management.

This package keeps a local record of Terraform Cloud / Enterprise workspaces
synchronized with the remote API, surviving out-of-band renames and legacy
identifier formats.
"""

from tfe_sync.version import __version__

__all__ = ["__version__"]
