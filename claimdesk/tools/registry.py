"""Tools registry for the claims assistant."""

from claimdesk.clients.anthropic import AnthropicTool, CacheControl
from claimdesk.models.conversation import ToolDescription
from claimdesk.services.claims import ClaimRepository
from claimdesk.tools.base import ToolDefinition
from claimdesk.tools.draft_appeal import create_draft_appeal_tool
from claimdesk.tools.lookup_claim import create_lookup_claim_tool
from claimdesk.tools.suggest_action import create_suggest_action_tool
from claimdesk.tools.update_claim_status import create_update_claim_status_tool


class ToolsRegistry:
    """Registry of server-executed and human-gated tools."""

    def __init__(self, claim_repository: ClaimRepository):
        """Initialize tools registry with the claim data source."""
        self.claim_repository = claim_repository
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        tools = [
            create_lookup_claim_tool(self.claim_repository),
            create_suggest_action_tool(self.claim_repository),
            create_draft_appeal_tool(),
            create_update_claim_status_tool(self.claim_repository),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name} is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool definition by name."""
        return self._tools.get(name)

    def describe(self) -> list[ToolDescription]:
        """Describe every tool as {name, inputSchema, description, mode}."""
        return [
            ToolDescription(
                name=tool.name,
                description=tool.description,
                input_schema=tool.get_json_schema(),
                mode=tool.mode,
            )
            for tool in self._tools.values()
        ]

    def anthropic_tools(self) -> list[AnthropicTool]:
        """Tool definitions for the model, with the cache marker on the last one."""
        tools = list(self._tools.values())
        return [
            AnthropicTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.get_json_schema(),
                # Marking the last tool caches every tool definition
                cache_control=CacheControl() if i == len(tools) - 1 else None,
            )
            for i, tool in enumerate(tools)
        ]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools
