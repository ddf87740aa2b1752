import importlib
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import agent_relay.config as config_module
from agent_relay.main import app, format_size_gb

# The package re-exports the `main` function, which shadows the submodule attribute.
main_module = importlib.import_module("agent_relay.main")

runner = CliRunner()


@pytest.fixture
def workdir(monkeypatch, tmp_path: Path) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "no-config.yaml")
    monkeypatch.setattr(main_module, "configure_logging", lambda: None)
    return tmp_path


def test_format_size_gb():
    assert format_size_gb(4661224676) == "4.3 GB"
    assert format_size_gb(0) == "0.0 GB"


def test_agents_add_then_list(workdir: Path):
    result = runner.invoke(app, [
        "agents", "add",
        "--role", "Reviewer",
        "--model", "qwen2.5-coder",
        "--tokens", "8192",
        "--tool", "check_go_code",
    ])
    assert result.exit_code == 0, result.output

    stored = json.loads((workdir / "agents.json").read_text(encoding="utf-8"))
    assert stored[0]["role"] == "Reviewer"
    assert stored[0]["tokens"] == "8192"
    assert stored[0]["selected_tools"] == ["check_go_code"]

    listed = runner.invoke(app, ["agents", "list"])
    assert listed.exit_code == 0
    assert "Reviewer" in listed.output
    assert "check_go_code" in listed.output


def test_agents_add_duplicate_fails(workdir: Path):
    assert runner.invoke(app, ["agents", "add", "--role", "Writer"]).exit_code == 0

    result = runner.invoke(app, ["agents", "add", "--role", "writer"])

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_agents_reorder_and_remove(workdir: Path):
    for role in ("Writer", "Reviewer"):
        runner.invoke(app, ["agents", "add", "--role", role])

    assert runner.invoke(app, ["agents", "move-up", "Reviewer"]).exit_code == 0
    roles = [a["role"] for a in json.loads((workdir / "agents.json").read_text(encoding="utf-8"))]
    assert roles == ["Reviewer", "Writer"]

    assert runner.invoke(app, ["agents", "remove", "writer"]).exit_code == 0
    roles = [a["role"] for a in json.loads((workdir / "agents.json").read_text(encoding="utf-8"))]
    assert roles == ["Reviewer"]

    missing = runner.invoke(app, ["agents", "remove", "Ghost"])
    assert missing.exit_code == 1


def test_agents_edit_changes_only_given_fields(workdir: Path):
    runner.invoke(app, [
        "agents", "add",
        "--role", "Reviewer",
        "--model", "llama3.1",
        "--system-prompt", "Review this.",
        "--use-conversation",
        "--tool", "check_go_code",
    ])

    result = runner.invoke(app, [
        "agents", "edit", "reviewer",
        "--role", "Go Reviewer",
        "--model", "qwen2.5-coder",
        "--tokens", "16384",
        "--no-use-conversation",
        "--context-file", "notes.md",
    ])
    assert result.exit_code == 0, result.output

    stored = json.loads((workdir / "agents.json").read_text(encoding="utf-8"))
    assert len(stored) == 1
    agent = stored[0]
    assert agent["role"] == "Go Reviewer"
    assert agent["model_version"] == "qwen2.5-coder"
    assert agent["tokens"] == "16384"
    assert agent["use_conversation"] is False
    assert agent["use_context"] is True
    assert agent["context_file_path"] == "notes.md"
    assert agent["system_prompt"] == "Review this."
    assert agent["selected_tools"] == ["check_go_code"]


def test_agents_edit_clears_tools(workdir: Path):
    runner.invoke(app, ["agents", "add", "--role", "Reviewer", "--tool", "check_go_code"])

    result = runner.invoke(app, ["agents", "edit", "Reviewer", "--clear-tools"])

    assert result.exit_code == 0, result.output
    stored = json.loads((workdir / "agents.json").read_text(encoding="utf-8"))
    assert stored[0]["selected_tools"] == []


def test_agents_edit_rejects_unknown_and_taken_roles(workdir: Path):
    for role in ("Writer", "Reviewer"):
        runner.invoke(app, ["agents", "add", "--role", role])

    missing = runner.invoke(app, ["agents", "edit", "Ghost", "--model", "x"])
    assert missing.exit_code == 1
    assert "Agent not found" in missing.output

    taken = runner.invoke(app, ["agents", "edit", "Writer", "--role", "REVIEWER"])
    assert taken.exit_code == 1
    assert "already exists" in taken.output
    roles = [a["role"] for a in json.loads((workdir / "agents.json").read_text(encoding="utf-8"))]
    assert roles == ["Writer", "Reviewer"]


def test_chats_list_shows_saved_chats(workdir: Path):
    chats_dir = workdir / "chats"
    chats_dir.mkdir()
    (chats_dir / "abc.json").write_text(json.dumps({
        "id": "abc",
        "name": "Parser work",
        "project_name": "relay",
        "created_at": "2024-05-01T10:20:30Z",
        "messages": [],
    }), encoding="utf-8")

    result = runner.invoke(app, ["chats", "list"])

    assert result.exit_code == 0
    assert "Parser work" in result.output
    assert "2024-05-01 10:20:30" in result.output


def test_version(workdir: Path):
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "Agent Relay v0.1.0" in result.output
