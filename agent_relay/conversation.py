"""One open chat bound to the agent chain."""

import asyncio
from dataclasses import replace

from structlog.contextvars import bound_contextvars

from agent_relay.agents import AgentStore
from agent_relay.chain import ChainEngine, ChainResult
from agent_relay.logging import get_logger
from agent_relay.session import Chat, ChatStore

log = get_logger(__name__)


class Conversation:
    """Explicit session state for a chat: its transcript, agents and stores.

    Sends are serialized per conversation; a chat's transcript only changes
    when a whole chain run succeeds.
    """

    def __init__(
        self,
        chat: Chat,
        agent_store: AgentStore,
        engine: ChainEngine,
        chat_store: ChatStore,
    ):
        self.chat = chat
        self.agent_store = agent_store
        self.engine = engine
        self.chat_store = chat_store
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def send(self, text: str) -> ChainResult | None:
        """Run ``text`` through the agent chain and persist the result.

        Returns None for blank input.

        Raises:
            ChainError: an agent failed; the chat is left unchanged.
            ConfigurationError: no agents are configured.
            SessionError: the chat could not be saved; the chat is left unchanged.
        """
        if not text.strip():
            return None

        async with self._lock:
            with bound_contextvars(chat_id=self.chat.id):
                result = await self.engine.run_chain(
                    text,
                    self.agent_store.list_agents(),
                    list(self.chat.messages),
                )
                self.chat_store.save_chat(replace(self.chat, messages=result.transcript))
                self.chat.messages = result.transcript
                log.info("Chain completed", messages=len(self.chat.messages))
            return result
