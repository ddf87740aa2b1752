"""Lenient decoding of tool-call arguments produced by local models.

Models served through Ollama do not always emit clean JSON for tool
arguments. Arguments may arrive as an object, as a JSON-encoded string, or as
an object whose string values still carry escape sequences (a literal
backslash-n instead of a newline, ``\\"`` instead of ``"``) and stray
triple-quote wrappers copied from Python-style docstrings.
"""

import json
from typing import Any

from agent_relay.exceptions import ToolCallParseError

_ESCAPES = (
    ("\\n", "\n"),
    ('\\"', '"'),
)


def decode_arguments(raw: Any) -> dict[str, Any]:
    """Decode raw tool-call arguments into a mapping.

    Raises:
        ToolCallParseError: arguments are neither an object nor a JSON string
            holding one.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolCallParseError(f"failed to unmarshal tool call: {e}") from e
        if isinstance(decoded, dict):
            return decoded
        raise ToolCallParseError(f"failed to unmarshal tool call: expected an object, got {type(decoded).__name__}")
    raise ToolCallParseError(f"failed to unmarshal tool call: unsupported arguments type {type(raw).__name__}")


def normalize_string_argument(value: str) -> str:
    """Undo the escaping artifacts some models leave in string arguments.

    Literal ``\\n`` becomes a newline, ``\\"`` becomes ``"``, and any run of
    double quotes at either end (including ``\"\"\"`` wrappers) is stripped.
    """
    text = value
    for escaped, plain in _ESCAPES:
        text = text.replace(escaped, plain)
    return text.strip('"')


def parse_code_argument(raw: Any, key: str = "code") -> str:
    """Extract and clean the ``code`` argument of a code-checker call.

    Raises:
        ToolCallParseError: arguments are malformed or the parameter is
            missing or empty.
    """
    arguments = decode_arguments(raw)
    code = arguments.get(key)
    if not isinstance(code, str) or not code:
        raise ToolCallParseError(f"{key} parameter not found in tool call")
    return normalize_string_argument(code)
