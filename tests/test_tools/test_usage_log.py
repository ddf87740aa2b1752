import json
from pathlib import Path

from agent_relay.tools.usage import ToolUsage, ToolUsageLog


def test_record_appends_to_json_array(tmp_path: Path):
    log_path = tmp_path / "tool_usages.json"
    usage_log = ToolUsageLog(log_path)

    assert usage_log.record(ToolUsage(agent_role="Reviewer", tool_name="check_go_code", input="a"))
    assert usage_log.record(ToolUsage(
        agent_role="Reviewer",
        tool_name="check_go_code",
        input="b",
        success=False,
        error_message="gofmt missing",
    ))

    data = json.loads(log_path.read_text(encoding="utf-8"))
    assert [item["input"] for item in data] == ["a", "b"]
    assert data[1]["success"] is False
    assert data[1]["error_message"] == "gofmt missing"
    assert set(data[0]) == {
        "timestamp",
        "agent_role",
        "tool_name",
        "input",
        "output",
        "success",
        "error_message",
    }


def test_corrupt_log_is_treated_as_empty(tmp_path: Path):
    log_path = tmp_path / "tool_usages.json"
    log_path.write_text("not json", encoding="utf-8")

    usage_log = ToolUsageLog(log_path)

    assert usage_log.load() == []
    assert usage_log.record(ToolUsage(agent_role="A", tool_name="check_go_code"))
    assert len(usage_log.load()) == 1


def test_write_failure_returns_false(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    usage_log = ToolUsageLog(blocker / "tool_usages.json")

    assert usage_log.record(ToolUsage(agent_role="A", tool_name="check_go_code")) is False
