"""Tools package for Agent Relay."""

from agent_relay.tools.arguments import decode_arguments, normalize_string_argument, parse_code_argument
from agent_relay.tools.go_check import CHECK_GO_CODE, CodeCheckReport, GoCodeCheckTool
from agent_relay.tools.registry import Tool, ToolRegistry, ToolResult
from agent_relay.tools.usage import ToolUsage, ToolUsageLog


def create_default_registry() -> ToolRegistry:
    """Registry holding every tool an agent can enable."""
    registry = ToolRegistry()
    registry.register(GoCodeCheckTool())
    return registry


__all__ = [
    "CHECK_GO_CODE",
    "CodeCheckReport",
    "GoCodeCheckTool",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "ToolUsage",
    "ToolUsageLog",
    "create_default_registry",
    "decode_arguments",
    "normalize_string_argument",
    "parse_code_argument",
]
