"""Custom exceptions for Agent Relay."""


class AgentRelayError(Exception):
    """Base exception for Agent Relay."""

    pass


class ConfigurationError(AgentRelayError):
    """Configuration-related errors."""

    pass


class ContextLoadError(ConfigurationError):
    """An agent's context source could not be read."""

    def __init__(self, role: str, path: str, reason: str):
        super().__init__(f"failed to load context for agent '{role}': {reason}")
        self.role = role
        self.path = path


class AgentNotFoundError(ConfigurationError):
    """No configured agent has the requested role."""

    def __init__(self, role: str):
        super().__init__(f"Agent not found: {role}")
        self.role = role


class DuplicateAgentError(ConfigurationError):
    """Agent role already taken (case-insensitive)."""

    def __init__(self, role: str):
        super().__init__(f"Agent role already exists: {role}")
        self.role = role


class LLMError(AgentRelayError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """Non-success answer from the inference service."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class LLMResponseFormatError(LLMError):
    """Response body did not have the expected shape."""

    pass


class LLMTimeoutError(LLMError):
    """Backend call exceeded its deadline."""

    def __init__(self, message: str, timeout: float | None = None):
        super().__init__(message)
        self.timeout = timeout


class ToolError(AgentRelayError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolCallParseError(ToolError):
    """Tool-call arguments from the model could not be decoded."""

    pass


class ChainError(AgentRelayError):
    """An agent turn failed and the whole chain was aborted."""

    def __init__(self, role: str, cause: Exception):
        super().__init__(f"error processing agent '{role}': {cause}")
        self.role = role
        self.cause = cause


class SessionError(AgentRelayError):
    """Session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
