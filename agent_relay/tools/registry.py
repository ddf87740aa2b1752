"""Tool registry and base tool class."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field, model_validator

from agent_relay.exceptions import ToolExecutionError, ToolNotFoundError
from agent_relay.llm import ToolDefinition
from agent_relay.logging import get_logger

log = get_logger(__name__)


def _normalize_tool_name(value: str) -> str:
    """Normalize tool names for lookups."""
    return str(value or "").strip().lower()


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments

        Returns:
            ToolResult with success status and content
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Raises:
            ToolExecutionError if a required argument is missing
        """
        required = self.parameters.get("required", [])
        for field in required:
            if field not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {field}",
                )


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[_normalize_tool_name(tool.name)] = tool

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        self._tools.pop(_normalize_tool_name(name), None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return _normalize_tool_name(name) in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        key = _normalize_tool_name(name)
        if key not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[key]

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return [tool.name for tool in self._tools.values()]

    def get_definitions(self, names: set[str] | list[str] | None = None) -> list[ToolDefinition]:
        """Get tool definitions, optionally restricted to the given names."""
        if names is None:
            return [tool.get_definition() for tool in self._tools.values()]
        wanted = {_normalize_tool_name(name) for name in names}
        return [
            tool.get_definition()
            for key, tool in self._tools.items()
            if key in wanted
        ]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name under its timeout.

        Raises:
            ToolNotFoundError if tool not found
            ToolExecutionError if execution fails or times out
        """
        tool = self.get(name)
        tool.validate_arguments(arguments)

        timeout_seconds = max(1.0, float(getattr(tool, "timeout_seconds", 30.0) or 30.0))
        try:
            log.info("Executing tool", tool=tool.name, args=sorted(arguments))
            result = await asyncio.wait_for(tool.execute(**arguments), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            raise ToolExecutionError(tool.name, f"Execution timed out after {timeout_label}s")
        except ToolExecutionError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=tool.name, error=str(e))
            raise ToolExecutionError(tool.name, str(e))

        if not isinstance(result, ToolResult):
            raise ToolExecutionError(tool.name, "Tool returned invalid result payload")
        log.info("Tool executed", tool=tool.name, success=result.success)
        return result
