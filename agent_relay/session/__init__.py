"""Chat transcripts stored as one JSON file per chat."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agent_relay.exceptions import SessionError, SessionNotFoundError
from agent_relay.llm import Message, trim_timestamp_fraction
from agent_relay.logging import get_logger

log = get_logger(__name__)

TEMPORARY_PREFIX = "temp-"
TEMPORARY_PROJECT = "Temporary"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp, including nanosecond precision."""
    if isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if not text:
        return _utcnow()
    text = trim_timestamp_fraction(text.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class Chat:
    """A named conversation and its transcript."""

    id: str
    name: str
    project_name: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    messages: list[Message] = field(default_factory=list)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMPORARY_PREFIX)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "project_name": self.project_name,
            "created_at": self.created_at.isoformat(),
            "messages": [msg.to_dict() for msg in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chat":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            project_name=str(data.get("project_name", "")),
            created_at=parse_timestamp(data.get("created_at")),
            messages=[Message.from_dict(item) for item in data.get("messages") or []],
        )


def create_chat(name: str, project_name: str = "") -> Chat:
    return Chat(id=str(uuid.uuid4()), name=name, project_name=project_name)


def create_temporary_chat() -> Chat:
    """Chat that lives only in memory and is never written to disk."""
    return Chat(
        id=f"{TEMPORARY_PREFIX}{uuid.uuid4()}",
        name="Temporary Chat",
        project_name=TEMPORARY_PROJECT,
    )


class ChatStore:
    """Directory of ``<id>.json`` chat files."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _chat_file(self, chat_id: str) -> Path:
        return self.path / f"{chat_id}.json"

    def list_chats(self) -> list[Chat]:
        """All readable chats, newest first.

        Unreadable or malformed files are skipped.
        """
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SessionError(f"failed to create chats directory: {e}") from e

        chats: list[Chat] = []
        for file in sorted(self.path.glob("*.json")):
            if not file.is_file():
                continue
            try:
                chats.append(Chat.from_dict(json.loads(file.read_text(encoding="utf-8"))))
            except (OSError, ValueError, KeyError, TypeError) as e:
                log.warning("Skipping unreadable chat file", path=str(file), error=str(e))

        chats.sort(key=lambda chat: chat.created_at, reverse=True)
        return chats

    def load_chat(self, chat_id: str) -> Chat:
        """Load one chat by id.

        Raises:
            SessionNotFoundError: no readable chat file has this id.
        """
        file = self._chat_file(chat_id)
        if not file.is_file():
            raise SessionNotFoundError(chat_id)
        try:
            return Chat.from_dict(json.loads(file.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SessionError(f"failed to read chat {chat_id}: {e}") from e

    def save_chat(self, chat: Chat) -> None:
        """Rewrite the chat's file. Temporary chats are not persisted."""
        if chat.is_temporary:
            log.debug("Not saving temporary chat", chat_id=chat.id)
            return
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            self._chat_file(chat.id).write_text(
                json.dumps(chat.to_dict(), indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise SessionError(f"failed to write chat file: {e}") from e
        log.debug("Saved chat", chat_id=chat.id, messages=len(chat.messages))

    def delete_chat(self, chat_id: str) -> bool:
        """Remove a chat file. Returns False when it did not exist."""
        file = self._chat_file(chat_id)
        if not file.exists():
            return False
        file.unlink()
        log.info("Deleted chat", chat_id=chat_id)
        return True
