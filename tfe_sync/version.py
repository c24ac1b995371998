"""Version information for tfe-workspace-sync."""

__version__ = "0.1.0"
