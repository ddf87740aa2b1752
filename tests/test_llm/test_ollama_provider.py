import json

import httpx
import pytest

from agent_relay.exceptions import LLMAPIError, LLMResponseFormatError, LLMTimeoutError
from agent_relay.llm import Message, OllamaProvider, ToolDefinition, create_provider
from agent_relay.config import Config, set_config


def _provider(handler) -> OllamaProvider:
    return OllamaProvider(
        base_url="http://ollama.test/api",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_chat_sends_non_streaming_payload_with_num_ctx():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "hi"}})

    provider = _provider(handler)
    response = await provider.chat(
        "llama3.1",
        [Message("system", "sys"), Message("user", "hello")],
        num_ctx=4096,
    )
    await provider.close()

    assert response.content == "hi"
    assert response.tool_calls == []
    assert str(seen[0].url) == "http://ollama.test/api/chat"
    body = json.loads(seen[0].content)
    assert body == {
        "model": "llama3.1",
        "messages": [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hello"},
        ],
        "stream": False,
        "options": {"num_ctx": 4096},
    }


@pytest.mark.asyncio
async def test_chat_passes_tools_and_parses_tool_calls():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={
            "message": {
                "role": "assistant",
                "content": "",
                "tool_calls": [
                    {"function": {"name": "check_go_code", "arguments": {"code": "package main"}}},
                ],
            },
        })

    tool = ToolDefinition(
        name="check_go_code",
        description="Check Go code",
        parameters={"type": "object", "properties": {"code": {"type": "string"}}},
    )
    async with _provider(handler) as provider:
        response = await provider.chat("m", [Message("user", "x")], num_ctx=2048, tools=[tool])

    assert seen[0]["tools"] == [{
        "type": "function",
        "function": {
            "name": "check_go_code",
            "description": "Check Go code",
            "parameters": {"type": "object", "properties": {"code": {"type": "string"}}},
        },
    }]
    assert len(response.tool_calls) == 1
    assert response.tool_calls[0].name == "check_go_code"
    assert response.tool_calls[0].raw_arguments == {"code": "package main"}


@pytest.mark.asyncio
async def test_chat_non_success_status_carries_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text='{"error":"model \\"nope\\" not found"}')

    async with _provider(handler) as provider:
        with pytest.raises(LLMAPIError) as exc_info:
            await provider.chat("nope", [Message("user", "x")], num_ctx=2048)

    assert exc_info.value.status_code == 404
    assert "not found" in exc_info.value.body


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"done": True},
        {"message": {"role": "assistant"}},
        {"message": {"role": "assistant", "content": 42}},
        [],
    ],
)
async def test_chat_rejects_unexpected_shapes(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    async with _provider(handler) as provider:
        with pytest.raises(LLMResponseFormatError):
            await provider.chat("m", [Message("user", "x")], num_ctx=2048)


@pytest.mark.asyncio
async def test_chat_rejects_invalid_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    async with _provider(handler) as provider:
        with pytest.raises(LLMResponseFormatError):
            await provider.chat("m", [Message("user", "x")], num_ctx=2048)


@pytest.mark.asyncio
async def test_chat_timeout_is_reported_as_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _provider(handler) as provider:
        with pytest.raises(LLMTimeoutError):
            await provider.chat("m", [Message("user", "x")], num_ctx=2048)


@pytest.mark.asyncio
async def test_connection_failure_is_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _provider(handler) as provider:
        with pytest.raises(LLMAPIError) as exc_info:
            await provider.chat("m", [Message("user", "x")], num_ctx=2048)

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_list_models_parses_tags():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={
            "models": [
                {
                    "name": "llama3.1:latest",
                    "model": "llama3.1:latest",
                    "modified_at": "2024-08-01T10:00:00.123456789-07:00",
                    "size": 4661224676,
                    "details": {"parameter_size": "8.0B", "quantization_level": "Q4_0"},
                },
            ],
        })

    async with _provider(handler) as provider:
        models = await provider.list_models()

    assert len(models) == 1
    assert models[0].name == "llama3.1:latest"
    assert models[0].size == 4661224676
    assert models[0].details.parameter_size == "8.0B"


@pytest.mark.asyncio
async def test_pull_model_streams_until_success():
    lines = [
        {"status": "pulling manifest"},
        {"status": "downloading", "digest": "sha256:abc", "total": 100, "completed": 50},
        {"status": "success"},
        {"status": "ignored after success"},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"name": "llama3.1"}
        body = "\n".join(json.dumps(line) for line in lines) + "\n"
        return httpx.Response(200, content=body.encode("utf-8"))

    async with _provider(handler) as provider:
        statuses = [progress.status async for progress in provider.pull_model("llama3.1")]

    assert statuses == ["pulling manifest", "downloading", "success"]


@pytest.mark.asyncio
async def test_pull_model_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.dumps({"status": "pulling manifest"}) + "\n" + json.dumps({"status": "error: manifest unknown"})
        return httpx.Response(200, content=body.encode("utf-8"))

    async with _provider(handler) as provider:
        with pytest.raises(LLMAPIError, match="manifest unknown"):
            async for _ in provider.pull_model("missing"):
                pass


@pytest.mark.asyncio
async def test_delete_model_uses_delete_endpoint():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    async with _provider(handler) as provider:
        await provider.delete_model("llama3.1")

    assert seen[0].method == "DELETE"
    assert seen[0].url.path == "/api/delete"
    assert json.loads(seen[0].content) == {"name": "llama3.1"}


@pytest.mark.asyncio
async def test_delete_model_failure_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async with _provider(handler) as provider:
        with pytest.raises(LLMAPIError):
            await provider.delete_model("llama3.1")


def test_create_provider_uses_config_values():
    cfg = Config()
    cfg.ollama.base_url = "http://gpu-box:11434/api/"
    cfg.ollama.timeout = 12.5
    set_config(cfg)
    try:
        provider = create_provider()
        assert provider.base_url == "http://gpu-box:11434/api"
        assert provider.timeout == 12.5
    finally:
        set_config(Config())
