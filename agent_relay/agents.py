"""Agent configurations and their ordered, file-backed store."""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from agent_relay.exceptions import AgentNotFoundError, DuplicateAgentError
from agent_relay.logging import get_logger

log = get_logger(__name__)

NO_CONTEXT_PLACEHOLDER = "No context file selected"


class ToolSpec(BaseModel):
    """Tool entry as stored alongside an agent."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class AgentConfig(BaseModel):
    """One configured participant in the chain."""

    role: str
    model_version: str = ""
    system_prompt: str = ""
    use_context: bool = False
    context_file_path: str = ""
    use_conversation: bool = False
    tokens: str = "2048"
    tools: list[ToolSpec] = Field(default_factory=list)
    selected_tools: list[str] = Field(default_factory=list)

    @field_validator("tokens", mode="before")
    @classmethod
    def _coerce_tokens(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v)

    @field_validator("tools", "selected_tools", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def enabled_tools(self) -> set[str]:
        """Names of every tool this agent may invoke."""
        names = {tool.name for tool in self.tools}
        names.update(self.selected_tools)
        return {name for name in names if name}

    def has_tool(self, name: str) -> bool:
        return name in self.enabled_tools

    @property
    def context_source(self) -> str | None:
        """Path to load context from, or None when no context is configured."""
        path = self.context_file_path.strip()
        if not self.use_context or not path or path == NO_CONTEXT_PLACEHOLDER:
            return None
        return path


def resolve_token_budget(raw: str | int | None, default: int) -> int:
    """Parse a token budget, falling back to ``default`` for bad or non-positive values."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return value


def default_agents(model: str = "llama3.1") -> list[AgentConfig]:
    """Starter chain: a code writer followed by a reviewer."""
    return [
        AgentConfig(
            role="Assistant",
            model_version=model,
            system_prompt="You are an assistant tasked with generating code based on the user's prompt.",
            use_conversation=False,
            tokens="16384",
        ),
        AgentConfig(
            role="Tester",
            model_version=model,
            system_prompt="You are a code tester tasked with reviewing the following code for potential bugs or issues.",
            use_conversation=True,
            tokens="16384",
        ),
    ]


_AGENT_LIST = TypeAdapter(list[AgentConfig])


def _same_role(a: str, b: str) -> bool:
    return a.casefold() == b.casefold()


class AgentStore:
    """Ordered agent list persisted as a JSON array.

    The list order is the chain's execution order. Every mutation rewrites the
    whole file.
    """

    def __init__(self, path: Path | str, default_model: str = "llama3.1"):
        self.path = Path(path).expanduser()
        self.default_model = default_model
        self._agents: list[AgentConfig] = []

    def load(self) -> list[AgentConfig]:
        """Load agents from disk.

        A missing file yields an empty chain. An unreadable or invalid file is
        replaced by the default chain.
        """
        if not self.path.exists():
            self._agents = []
            return self.list_agents()

        try:
            self._agents = _AGENT_LIST.validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            log.error("Error loading agents from file", path=str(self.path), error=str(e))
            self._agents = default_agents(self.default_model)
            try:
                self.save()
            except OSError as save_error:
                log.error("Failed to save default agents", error=str(save_error))
        return self.list_agents()

    def save(self) -> None:
        """Rewrite the agents file with the current list."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [agent.model_dump() for agent in self._agents]
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def list_agents(self) -> list[AgentConfig]:
        """Snapshot of the chain in execution order."""
        return [agent.model_copy(deep=True) for agent in self._agents]

    def _index(self, role: str) -> int:
        for idx, agent in enumerate(self._agents):
            if _same_role(agent.role, role):
                return idx
        raise AgentNotFoundError(role)

    def get(self, role: str) -> AgentConfig:
        return self._agents[self._index(role)].model_copy(deep=True)

    def add(self, agent: AgentConfig) -> None:
        if any(_same_role(existing.role, agent.role) for existing in self._agents):
            raise DuplicateAgentError(agent.role)
        self._agents.append(agent.model_copy(deep=True))
        self.save()
        log.info("Added new agent", role=agent.role)

    def update(self, role: str, agent: AgentConfig) -> None:
        idx = self._index(role)
        for other_idx, existing in enumerate(self._agents):
            if other_idx != idx and _same_role(existing.role, agent.role):
                raise DuplicateAgentError(agent.role)
        self._agents[idx] = agent.model_copy(deep=True)
        self.save()
        log.info("Edited agent", role=agent.role)

    def delete(self, role: str) -> None:
        idx = self._index(role)
        removed = self._agents.pop(idx)
        self.save()
        log.info("Deleted agent", role=removed.role)

    def move_up(self, role: str) -> bool:
        """Swap the agent with its predecessor. Returns False when already first."""
        idx = self._index(role)
        if idx == 0:
            return False
        self._agents[idx - 1], self._agents[idx] = self._agents[idx], self._agents[idx - 1]
        self.save()
        return True

    def move_down(self, role: str) -> bool:
        """Swap the agent with its successor. Returns False when already last."""
        idx = self._index(role)
        if idx >= len(self._agents) - 1:
            return False
        self._agents[idx + 1], self._agents[idx] = self._agents[idx], self._agents[idx + 1]
        self.save()
        return True
