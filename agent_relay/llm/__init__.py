"""Ollama provider - direct HTTP calls to the Ollama API."""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator

import httpx
from pydantic import BaseModel, Field, field_validator

from agent_relay.exceptions import LLMAPIError, LLMResponseFormatError, LLMTimeoutError
from agent_relay.logging import get_logger

log = get_logger(__name__)


OLLAMA_API_URL = "http://localhost:11434/api"

# Ollama reports nanosecond timestamps; datetime stops at microseconds.
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def trim_timestamp_fraction(value: str) -> str:
    return _EXTRA_FRACTION.sub(r"\1", value)


@dataclass(frozen=True)
class Message:
    """A role-tagged message in the conversation."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(role=str(data.get("role", "")), content=str(data.get("content", "")))


@dataclass
class ToolCall:
    """A tool call requested by the model.

    ``raw_arguments`` is kept exactly as decoded from the response: usually an
    object, but some models send a JSON-encoded string instead.
    """

    name: str
    raw_arguments: Any = None


@dataclass
class LLMResponse:
    """Response from the LLM."""

    content: str
    role: str = "assistant"
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


class ModelDetails(BaseModel):
    parameter_size: str = ""
    quantization_level: str = ""


class OllamaModel(BaseModel):
    """Locally installed model as listed by ``/tags``."""

    name: str
    model: str = ""
    modified_at: datetime | None = None
    size: int = 0
    details: ModelDetails = Field(default_factory=ModelDetails)

    @field_validator("modified_at", mode="before")
    @classmethod
    def _trim_fraction(cls, v: Any) -> Any:
        if isinstance(v, str):
            return trim_timestamp_fraction(v) or None
        return v


class PullProgress(BaseModel):
    """One line of the ``/pull`` progress stream."""

    status: str = ""
    digest: str = ""
    total: int = 0
    completed: int = 0
    progress: float = 0.0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        model: str,
        messages: list[Message],
        num_ctx: int | None = None,
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        pass


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        base_url: str = OLLAMA_API_URL,
        timeout: float | None = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            base_url: Ollama API base URL, including the ``/api`` prefix
            timeout: Per-request deadline in seconds (None disables it)
            transport: Optional httpx transport override
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "OllamaProvider":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, str]]:
        """Convert messages to Ollama format."""
        return [msg.to_dict() for msg in messages]

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert tools to Ollama format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.parameters or {},
                },
            }
            for tool in tools
            if tool.name
        ]

    async def _send(self, method: str, path: str, body: dict[str, Any] | None = None) -> httpx.Response:
        """Send one request, translating transport failures."""
        url = f"{self.base_url}{path}"
        try:
            return await self.client.request(method, url, json=body)
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Ollama request timed out: {url}", timeout=self.timeout) from e
        except httpx.HTTPError as e:
            raise LLMAPIError(f"failed to send request to Ollama API: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if not response.is_success:
            body = response.text
            raise LLMAPIError(
                f"Ollama API error {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

    async def chat(
        self,
        model: str,
        messages: list[Message],
        num_ctx: int | None = None,
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        """Issue a single non-streaming chat completion."""
        body: dict[str, Any] = {
            "model": model,
            "messages": self._convert_messages(messages),
            "stream": False,
        }
        if num_ctx is not None:
            body["options"] = {"num_ctx": num_ctx}
        if tools:
            body["tools"] = self._convert_tools(tools)

        log.debug("Calling Ollama", model=model, msg_count=len(messages), num_ctx=num_ctx, tools=bool(tools))
        response = await self._send("POST", "/chat", body)
        log.debug("Ollama response status", status=response.status_code)
        self._raise_for_status(response)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMResponseFormatError(f"failed to decode Ollama API response: {e}") from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise LLMResponseFormatError(f"unexpected response format or empty response: {data!r}")

        tool_calls: list[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function", {}) if isinstance(tc, dict) else {}
            if not isinstance(function, dict):
                raise LLMResponseFormatError(f"unexpected tool call format: {tc!r}")
            tool_calls.append(ToolCall(
                name=str(function.get("name", "")),
                raw_arguments=function.get("arguments"),
            ))

        usage = {
            "prompt_tokens": data.get("prompt_eval_count", 0),
            "completion_tokens": data.get("eval_count", 0),
            "total_tokens": data.get("prompt_eval_count", 0) + data.get("eval_count", 0),
        }

        return LLMResponse(
            content=message["content"],
            role=str(message.get("role") or "assistant"),
            tool_calls=tool_calls,
            model=model,
            usage=usage,
        )

    async def list_models(self) -> list[OllamaModel]:
        """List locally installed models."""
        response = await self._send("GET", "/tags")
        self._raise_for_status(response)
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise LLMResponseFormatError(f"failed to decode model list: {e}") from e
        if not isinstance(data, dict):
            raise LLMResponseFormatError(f"unexpected model list format: {data!r}")
        return [OllamaModel.model_validate(item) for item in data.get("models") or []]

    async def pull_model(self, name: str) -> AsyncIterator[PullProgress]:
        """Pull a model, yielding progress lines until ``success``."""
        url = f"{self.base_url}/pull"
        try:
            async with self.client.stream("POST", url, json={"name": name}) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {body}",
                        status_code=response.status_code,
                        body=body,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        progress = PullProgress.model_validate(json.loads(line))
                    except (json.JSONDecodeError, ValueError) as e:
                        raise LLMResponseFormatError(f"failed to decode pull progress: {e}") from e

                    if progress.status.startswith("error"):
                        raise LLMAPIError(f"pull error: {progress.status}", body=line)
                    yield progress
                    if progress.status == "success":
                        break
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Ollama request timed out: {url}", timeout=self.timeout) from e
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}") from e

    async def delete_model(self, name: str) -> None:
        """Delete a locally installed model."""
        response = await self._send("DELETE", "/delete", {"name": name})
        self._raise_for_status(response)
        log.info("Deleted model", model=name)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(base_url: str | None = None, timeout: float | None = None) -> OllamaProvider:
    """Create an Ollama provider from explicit values or the global config."""
    from agent_relay.config import get_config

    cfg = get_config()
    return OllamaProvider(
        base_url=base_url or cfg.ollama.base_url,
        timeout=timeout if timeout is not None else cfg.ollama.timeout,
    )


__all__ = [
    "LLMProvider",
    "LLMResponse",
    "Message",
    "ModelDetails",
    "OllamaModel",
    "OllamaProvider",
    "PullProgress",
    "ToolCall",
    "ToolDefinition",
    "create_provider",
]
