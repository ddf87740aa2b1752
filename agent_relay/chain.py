"""Agent chain engine: feeds one user input through the ordered agent list."""

from dataclasses import dataclass, field

from structlog.contextvars import bound_contextvars

from agent_relay.agents import AgentConfig, resolve_token_budget
from agent_relay.exceptions import (
    AgentRelayError,
    ChainError,
    ConfigurationError,
    ToolError,
)
from agent_relay.llm import LLMProvider, LLMResponse, Message, ToolCall
from agent_relay.logging import get_logger
from agent_relay.prompts import ContextLoader, load_file_context, resolve_system_prompt
from agent_relay.tools.arguments import parse_code_argument
from agent_relay.tools.go_check import CHECK_GO_CODE
from agent_relay.tools.registry import ToolRegistry, ToolResult
from agent_relay.tools.usage import ToolUsage, ToolUsageLog

log = get_logger(__name__)

DEFAULT_CHAIN_TOKENS = 2048
DEFAULT_DIRECT_TOKENS = 16384

TOOL_CALL_MARKER = '{"name": "check_go_code"'
INITIAL_ANALYSIS_BANNER = "Initial Analysis:\n"
TOOL_FAILURE_PROMPT = (
    "The code checking tool found some issues:\n\n{failure}\n\n"
    "Please analyze these results and provide specific recommendations."
)


@dataclass
class AgentTurn:
    """What one agent produced during a chain run."""

    role: str
    model: str
    content: str
    output: str
    review_mode: bool = False
    tool_results: list[ToolResult] = field(default_factory=list)


@dataclass
class ChainResult:
    final_output: str
    transcript: list[Message]
    turns: list[AgentTurn] = field(default_factory=list)


def response_header(role: str) -> str:
    return f"Response from {role}:\n\n"


class ChainEngine:
    """Runs agents strictly in order, each one reading the previous output.

    The engine holds no conversation state: ``run_chain`` takes the prior
    transcript and returns a new one, leaving the caller's list untouched.
    """

    def __init__(
        self,
        provider: LLMProvider,
        tools: ToolRegistry,
        default_tokens: int = DEFAULT_CHAIN_TOKENS,
        direct_default_tokens: int = DEFAULT_DIRECT_TOKENS,
        context_loader: ContextLoader = load_file_context,
        usage_log: ToolUsageLog | None = None,
    ):
        self.provider = provider
        self.tools = tools
        self.default_tokens = default_tokens
        self.direct_default_tokens = direct_default_tokens
        self.context_loader = context_loader
        self.usage_log = usage_log

    async def run_chain(
        self,
        user_input: str,
        agents: list[AgentConfig],
        history: list[Message],
    ) -> ChainResult:
        """Run ``user_input`` through every agent and return the new transcript.

        Raises:
            ConfigurationError: ``agents`` is empty.
            ChainError: any agent turn failed; nothing from the partial run is
                returned.
        """
        if not agents:
            raise ConfigurationError("no agents configured")

        transcript = list(history)
        transcript.append(Message(role="user", content=user_input))
        current_input = user_input
        turns: list[AgentTurn] = []

        log.info("Starting agent chain", agents=len(agents), history=len(history))
        for agent in agents:
            with bound_contextvars(role=agent.role):
                try:
                    turn = await self._run_agent(agent, current_input, transcript)
                except AgentRelayError as e:
                    log.error("Agent turn failed", error=str(e))
                    raise ChainError(agent.role, e) from e
                log.info("Agent turn finished", chars=len(turn.output))

            transcript = transcript + [Message(role="assistant", content=turn.output)]
            turns.append(turn)
            current_input = turn.output

        return ChainResult(final_output=current_input, transcript=transcript, turns=turns)

    async def _run_agent(
        self,
        agent: AgentConfig,
        current_input: str,
        transcript: list[Message],
    ) -> AgentTurn:
        prompt = resolve_system_prompt(agent, current_input, self.context_loader)

        messages = [Message(role="system", content=prompt.text)]
        if agent.use_conversation:
            messages.extend(transcript)
        messages.append(Message(role="user", content=current_input))

        num_ctx = resolve_token_budget(agent.tokens, self.default_tokens)
        tool_defs = self.tools.get_definitions([CHECK_GO_CODE]) if prompt.review_mode else None

        log.debug(
            "Processing agent",
            model=agent.model_version,
            num_ctx=num_ctx,
            review_mode=prompt.review_mode,
        )
        response = await self.provider.chat(
            agent.model_version,
            messages,
            num_ctx=num_ctx,
            tools=tool_defs,
        )

        output = response_header(agent.role)
        if prompt.review_mode and TOOL_CALL_MARKER not in response.content:
            output += INITIAL_ANALYSIS_BANNER
        output += response.content

        results: list[ToolResult] = []
        for call in response.tool_calls:
            if call.name != CHECK_GO_CODE:
                log.debug("Ignoring tool call", tool=call.name)
                continue
            section, result = await self._handle_code_check(agent, call, messages, response, num_ctx)
            output += section
            results.append(result)

        return AgentTurn(
            role=agent.role,
            model=agent.model_version,
            content=response.content,
            output=output,
            review_mode=prompt.review_mode,
            tool_results=results,
        )

    async def _handle_code_check(
        self,
        agent: AgentConfig,
        call: ToolCall,
        messages: list[Message],
        response: LLMResponse,
        num_ctx: int,
    ) -> tuple[str, ToolResult]:
        """Run the checker for one tool call and render its transcript section."""
        code = parse_code_argument(call.raw_arguments)

        try:
            result = await self.tools.execute(CHECK_GO_CODE, {"code": code})
        except ToolError as e:
            result = ToolResult(success=False, error=str(e))
        self._record_usage(agent, code, result)

        if result.success:
            return "\n\nCode Check Results:\n" + result.content, result

        failure = result.error or ""
        log.info("Code check failed, requesting analysis", error=failure)
        follow_up = messages + [
            Message(role="assistant", content=response.content),
            Message(role="user", content=TOOL_FAILURE_PROMPT.format(failure=failure)),
        ]
        analysis = await self.provider.chat(agent.model_version, follow_up, num_ctx=num_ctx)
        section = (
            "\n\nLint Results and Analysis:\n" + failure
            + "\n\nRecommendations:\n" + analysis.content
        )
        return section, result

    def _record_usage(self, agent: AgentConfig, code: str, result: ToolResult) -> None:
        if self.usage_log is None:
            return
        self.usage_log.record(ToolUsage(
            agent_role=agent.role,
            tool_name=CHECK_GO_CODE,
            input=code,
            output=result.content,
            success=result.success,
            error_message=result.error or "",
        ))

    async def ask(self, agent: AgentConfig, messages: list[Message]) -> str:
        """Send caller-built messages to one agent's model and return the reply text."""
        num_ctx = resolve_token_budget(agent.tokens, self.direct_default_tokens)
        response = await self.provider.chat(agent.model_version, list(messages), num_ctx=num_ctx)
        return response.content
