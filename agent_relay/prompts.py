"""System prompt resolution for chain agents."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from agent_relay.agents import AgentConfig
from agent_relay.exceptions import ContextLoadError
from agent_relay.tools.go_check import CHECK_GO_CODE

CONTEXT_PLACEHOLDER = "{context}"
DEFAULT_SYSTEM_PROMPT = ""

# Reproduced as-is: existing prompt-tuned models were tuned against this text.
CODE_REVIEW_SYSTEM_PROMPT = """You are a code review assistant. Your primary task is to analyze and test Go code.
Follow these steps for each code review:

1. Use the check_go_code tool to analyze it
    - you will ALWAYS use this tool on go code
    - print any errors or warnings you get
2. Analyze the tool's output thoroughly:
   - Build errors indicate the code won't compile
   - Linter warnings suggest potential issues
   - Pay special attention to type errors and undefined variables
3. Always provide:
   - A clear summary of all issues found
   - Specific suggestions for fixing each problem
   - Example corrections where appropriate
4. Even if the code passes checks, consider:
   - Code organization
   - Error handling
   - Best practices
   - Performance implications

Important: Always use the check_go_code tool on any Go code you receive. Do not skip this step. Do not alter any code you recieve"""

ContextLoader = Callable[[str], str]


def load_file_context(path: str) -> str:
    """Read a context file as text."""
    return Path(path).expanduser().read_text(encoding="utf-8")


def extract_code_blocks(text: str) -> list[str]:
    """Return the bodies of closed ```go fenced blocks in ``text``.

    Blocks fenced with any other language tag (or none) are skipped, as is a
    trailing block that is never closed.
    """
    blocks: list[str] = []
    current: list[str] = []
    in_block = False
    is_go = False

    for line in text.splitlines():
        if line.startswith("```"):
            if not in_block:
                in_block = True
                is_go = line.startswith("```go")
                current = []
            else:
                if is_go:
                    blocks.append("".join(current))
                in_block = False
                is_go = False
        elif in_block and is_go:
            current.append(line + "\n")

    return blocks


def substitute_context(template: str, context: str) -> str:
    """Fill ``{context}`` in a template, append context, or strip the placeholder."""
    if context:
        if CONTEXT_PLACEHOLDER in template:
            return template.replace(CONTEXT_PLACEHOLDER, context)
        return f"{template}\n\nContext:\n{context}"
    return template.replace(CONTEXT_PLACEHOLDER, "").strip()


def review_override_applies(agent: AgentConfig, current_input: str) -> bool:
    """Whether the code-review prompt and checker tool replace the agent's own prompt."""
    return agent.has_tool(CHECK_GO_CODE) and bool(extract_code_blocks(current_input))


@dataclass
class ResolvedPrompt:
    text: str
    review_mode: bool
    context: str = ""


def load_agent_context(agent: AgentConfig, loader: ContextLoader = load_file_context) -> str:
    """Load an agent's context, or return "" when it has none.

    Raises:
        ContextLoadError: the configured source could not be read.
    """
    source = agent.context_source
    if source is None:
        return ""
    try:
        return loader(source)
    except (OSError, UnicodeDecodeError) as e:
        raise ContextLoadError(agent.role, source, f"failed to read file {source}: {e}") from e


def resolve_system_prompt(
    agent: AgentConfig,
    current_input: str,
    loader: ContextLoader = load_file_context,
) -> ResolvedPrompt:
    """Build the system prompt an agent sees for ``current_input``."""
    context = load_agent_context(agent, loader)

    if review_override_applies(agent, current_input):
        text = CODE_REVIEW_SYSTEM_PROMPT
        if context:
            text = f"{text}\n\nContext: {context}"
        return ResolvedPrompt(text=text, review_mode=True, context=context)

    template = agent.system_prompt or DEFAULT_SYSTEM_PROMPT
    return ResolvedPrompt(
        text=substitute_context(template, context),
        review_mode=False,
        context=context,
    )
