"""Agent Relay - chain local Ollama models over one conversation."""

__version__ = "0.1.0"

from agent_relay.config import Config
from agent_relay.main import main

__all__ = ["Config", "main", "__version__"]
