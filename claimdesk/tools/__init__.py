"""Tools for the claims assistant."""

from claimdesk.tools.registry import ToolsRegistry

__all__ = ["ToolsRegistry"]
