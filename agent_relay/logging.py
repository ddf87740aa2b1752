"""Structured logging for Agent Relay.

Chain code binds ``chat_id`` and ``role`` with ``structlog.contextvars``;
``merge_contextvars`` puts them on every event logged during a turn.
"""

import logging
import sys
from typing import Callable

import structlog
from structlog.typing import Processor

from agent_relay.config import LoggingConfig, get_config

LineSink = Callable[[str], None]

_line_sink: LineSink | None = None


class _LineWriter:
    """File object handed to structlog; forwards complete lines to a sink."""

    def __init__(self, sink: LineSink):
        self._sink = sink
        self._pending = ""

    def write(self, text: str) -> int:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            if line:
                self._sink(line)
        return len(text)

    def flush(self) -> None:
        if self._pending:
            self._sink(self._pending)
            self._pending = ""


def set_log_sink(sink: LineSink | None) -> None:
    """Send log lines to ``sink`` (the chat console) instead of stderr.

    Takes effect on the next ``configure_logging`` call.
    """
    global _line_sink
    _line_sink = sink


def _renderer(fmt: str) -> Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    # The chat console prints lines as plain text, so ANSI colours would show up raw.
    return structlog.dev.ConsoleRenderer(colors=_line_sink is None)


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog from ``config`` (default: the global config)."""
    config = config or get_config().logging
    level = getattr(logging, config.level.upper(), logging.INFO)
    output = _LineWriter(_line_sink) if _line_sink else sys.stderr

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(config.format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        # Reconfiguring for the chat console must reach loggers already in use.
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


log = get_logger(__name__)
