"""Append-only log of tool invocations."""

import json
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from agent_relay.logging import get_logger

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ToolUsage(BaseModel):
    """One recorded tool invocation."""

    timestamp: datetime = Field(default_factory=_utcnow)
    agent_role: str
    tool_name: str
    input: str = ""
    output: str = ""
    success: bool = True
    error_message: str = ""


_USAGE_LIST = TypeAdapter(list[ToolUsage])


class ToolUsageLog:
    """JSON-array file of ToolUsage records, rewritten on each append."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def load(self) -> list[ToolUsage]:
        """Load recorded usages; a missing file means no usages yet."""
        if not self.path.exists():
            return []
        try:
            return _USAGE_LIST.validate_json(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, ValidationError) as e:
            log.warning("Failed to read tool usage log", path=str(self.path), error=str(e))
            return []

    def record(self, usage: ToolUsage) -> bool:
        """Append one usage. Write failures are logged and reported as False."""
        usages = self.load()
        usages.append(usage)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [item.model_dump(mode="json") for item in usages]
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            log.warning("Failed to write tool usage log", path=str(self.path), error=str(e))
            return False
        return True
