"""Command-line entry point for Agent Relay."""

import asyncio
import sys
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agent_relay.agents import AgentConfig, AgentStore
from agent_relay.chain import ChainEngine
from agent_relay.config import Config, get_config, set_config
from agent_relay.conversation import Conversation
from agent_relay.exceptions import AgentRelayError, ConfigurationError, SessionError
from agent_relay.llm import create_provider
from agent_relay.logging import configure_logging, log, set_log_sink
from agent_relay.session import Chat, ChatStore, create_chat, create_temporary_chat
from agent_relay.tools import ToolUsageLog, create_default_registry

console = Console()

app = typer.Typer(help="Agent Relay - chain local Ollama models over one conversation")
agents_app = typer.Typer(help="Manage the ordered agent chain")
models_app = typer.Typer(help="Manage locally installed models")
chats_app = typer.Typer(help="Browse saved chats")
app.add_typer(agents_app, name="agents")
app.add_typer(models_app, name="models")
app.add_typer(chats_app, name="chats")

EXIT_COMMAND = "/exit"


def format_size_gb(size: int) -> str:
    return f"{size / (1024 * 1024 * 1024):.1f} GB"


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(code=1)


@app.callback()
def _setup(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Load configuration and set up logging for every command."""
    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            console.print(f"[yellow]Failed to load config {config}: {e}[/yellow]")
            cfg = Config.load()
    else:
        cfg = Config.load()

    if verbose:
        cfg.logging.level = "DEBUG"
    set_config(cfg)
    configure_logging()


def _agent_store() -> AgentStore:
    cfg = get_config()
    store = AgentStore(cfg.resolved_path(cfg.storage.agents_path), default_model=cfg.ollama.default_model)
    store.load()
    return store


def _chat_store() -> ChatStore:
    cfg = get_config()
    return ChatStore(cfg.resolved_path(cfg.storage.chats_path))


# -- chat ----------------------------------------------------------------


async def run_chat(chat: Chat, agent_store: AgentStore, chat_store: ChatStore) -> None:
    """Interactive loop: each line is sent through the whole agent chain."""
    cfg = get_config()
    async with create_provider() as provider:
        engine = ChainEngine(
            provider,
            create_default_registry(),
            default_tokens=cfg.chain.default_tokens,
            direct_default_tokens=cfg.chain.direct_default_tokens,
            usage_log=ToolUsageLog(cfg.resolved_path(cfg.storage.tool_usage_path)),
        )
        conversation = Conversation(chat, agent_store, engine, chat_store)

        title = f"{chat.name} ({chat.project_name})" if chat.project_name else chat.name
        console.print(Panel(
            f"Agents: {', '.join(a.role for a in agent_store.list_agents()) or 'none'}\n"
            f"Type {EXIT_COMMAND} to quit.",
            title=title,
        ))
        for message in chat.messages:
            console.print(Text(f"{message.role}: {message.content}"))

        while True:
            try:
                text = console.input("[bold green]> [/bold green]")
            except (EOFError, KeyboardInterrupt):
                break
            if text.strip() == EXIT_COMMAND:
                break

            try:
                with console.status("Running agent chain..."):
                    result = await conversation.send(text)
            except AgentRelayError as e:
                console.print(f"[red]Error:[/red] {e}")
                continue
            if result is None:
                continue

            for turn in result.turns:
                console.print(Panel(Text(turn.output), title=turn.role, title_align="left"))


@app.command()
def chat(
    chat_id: str = typer.Option("", "--chat", help="Resume a saved chat by id"),
    new: str = typer.Option("", "--new", help="Start a new saved chat with this name"),
    project: str = typer.Option("", "--project", help="Project name for a new chat"),
) -> None:
    """Start an interactive chat. Without options the chat is temporary."""
    if chat_id and new:
        _fail("--chat and --new cannot be combined")

    chat_store = _chat_store()
    if chat_id:
        try:
            current = chat_store.load_chat(chat_id)
        except SessionError as e:
            _fail(str(e))
    elif new:
        if not project:
            _fail("--project is required with --new")
        current = create_chat(new, project)
        chat_store.save_chat(current)
    else:
        current = create_temporary_chat()

    set_log_sink(lambda line: console.print(Text(line, style="dim")))
    configure_logging()
    try:
        asyncio.run(run_chat(current, _agent_store(), chat_store))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)


# -- agents --------------------------------------------------------------


@agents_app.command("list")
def agents_list() -> None:
    """Show agents in execution order."""
    agents = _agent_store().list_agents()
    if not agents:
        console.print("[yellow]No agents configured.[/yellow]")
        return

    table = Table(title="Agents", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Role")
    table.add_column("Model")
    table.add_column("Tokens")
    table.add_column("Conversation")
    table.add_column("Tools")
    for idx, agent in enumerate(agents, start=1):
        table.add_row(
            str(idx),
            agent.role,
            agent.model_version,
            agent.tokens,
            "yes" if agent.use_conversation else "no",
            ", ".join(sorted(agent.enabled_tools)) or "-",
        )
    console.print(table)


@agents_app.command("add")
def agents_add(
    role: str = typer.Option(..., "--role", help="Unique agent role"),
    model: str = typer.Option("", "--model", help="Model to run (defaults to config)"),
    system_prompt: str = typer.Option("", "--system-prompt", help="Prompt template; may contain {context}"),
    context_file: str = typer.Option("", "--context-file", help="File loaded into {context}"),
    use_conversation: bool = typer.Option(False, "--use-conversation", help="Send the chat transcript"),
    tokens: str = typer.Option("2048", "--tokens", help="Context window size"),
    tool: list[str] = typer.Option([], "--tool", help="Enable a tool (repeatable)"),
) -> None:
    """Append an agent to the end of the chain."""
    store = _agent_store()
    agent = AgentConfig(
        role=role,
        model_version=model or get_config().ollama.default_model,
        system_prompt=system_prompt,
        use_context=bool(context_file),
        context_file_path=context_file,
        use_conversation=use_conversation,
        tokens=tokens,
        selected_tools=list(tool),
    )
    try:
        store.add(agent)
    except ConfigurationError as e:
        _fail(str(e))
    console.print(f"[green]Added agent {role}[/green]")


@agents_app.command("edit")
def agents_edit(
    role: str = typer.Argument(..., help="Role of the agent to edit"),
    new_role: str = typer.Option("", "--role", help="Rename the agent"),
    model: str = typer.Option("", "--model", help="Model to run"),
    system_prompt: str = typer.Option("", "--system-prompt", help="Prompt template; may contain {context}"),
    context_file: str = typer.Option("", "--context-file", help="File loaded into {context}"),
    no_context: bool = typer.Option(False, "--no-context", help="Stop loading a context file"),
    use_conversation: Optional[bool] = typer.Option(
        None, "--use-conversation/--no-use-conversation", help="Send the chat transcript"
    ),
    tokens: str = typer.Option("", "--tokens", help="Context window size"),
    tool: list[str] = typer.Option([], "--tool", help="Replace enabled tools (repeatable)"),
    clear_tools: bool = typer.Option(False, "--clear-tools", help="Disable every tool"),
) -> None:
    """Change an agent in place; options left out keep their value."""
    if context_file and no_context:
        _fail("--context-file and --no-context cannot be combined")

    store = _agent_store()
    try:
        current = store.get(role)
    except ConfigurationError as e:
        _fail(str(e))

    changes: dict = {}
    if new_role:
        changes["role"] = new_role
    if model:
        changes["model_version"] = model
    if system_prompt:
        changes["system_prompt"] = system_prompt
    if context_file:
        changes.update(use_context=True, context_file_path=context_file)
    elif no_context:
        changes.update(use_context=False, context_file_path="")
    if use_conversation is not None:
        changes["use_conversation"] = use_conversation
    if tokens:
        changes["tokens"] = tokens
    if tool or clear_tools:
        changes.update(tools=[], selected_tools=list(tool))

    if not changes:
        console.print("[yellow]Nothing to change.[/yellow]")
        return

    try:
        store.update(role, current.model_copy(update=changes))
    except ConfigurationError as e:
        _fail(str(e))
    console.print(f"[green]Updated agent {changes.get('role', current.role)}[/green]")


@agents_app.command("remove")
def agents_remove(role: str = typer.Argument(..., help="Agent role")) -> None:
    """Delete an agent."""
    try:
        _agent_store().delete(role)
    except ConfigurationError as e:
        _fail(str(e))
    console.print(f"[green]Removed agent {role}[/green]")


@agents_app.command("move-up")
def agents_move_up(role: str = typer.Argument(..., help="Agent role")) -> None:
    """Run an agent one step earlier."""
    try:
        moved = _agent_store().move_up(role)
    except ConfigurationError as e:
        _fail(str(e))
    if not moved:
        console.print(f"[yellow]{role} is already first[/yellow]")


@agents_app.command("move-down")
def agents_move_down(role: str = typer.Argument(..., help="Agent role")) -> None:
    """Run an agent one step later."""
    try:
        moved = _agent_store().move_down(role)
    except ConfigurationError as e:
        _fail(str(e))
    if not moved:
        console.print(f"[yellow]{role} is already last[/yellow]")


# -- models --------------------------------------------------------------


async def _list_models() -> None:
    async with create_provider() as provider:
        models = await provider.list_models()

    table = Table(title="Installed Models", show_header=True, header_style="bold cyan")
    table.add_column("Name")
    table.add_column("Parameter Size")
    table.add_column("Size (GB)", justify="right")
    for model in sorted(models, key=lambda m: m.name):
        table.add_row(model.name, model.details.parameter_size, format_size_gb(model.size))
    console.print(table)


async def _pull_model(name: str) -> None:
    last_status = ""
    async with create_provider() as provider:
        async for progress in provider.pull_model(name):
            if progress.total:
                pct = progress.completed * 100 / progress.total
                console.print(f"{progress.status} {pct:.1f}%", highlight=False)
            elif progress.status != last_status:
                console.print(progress.status, highlight=False)
            last_status = progress.status


async def _delete_model(name: str) -> None:
    async with create_provider() as provider:
        await provider.delete_model(name)


@models_app.command("list")
def models_list() -> None:
    """List models installed in Ollama."""
    try:
        asyncio.run(_list_models())
    except AgentRelayError as e:
        _fail(str(e))


@models_app.command("pull")
def models_pull(name: str = typer.Argument(..., help="Model name, e.g. llama3.1:8b")) -> None:
    """Download a model."""
    try:
        asyncio.run(_pull_model(name))
    except AgentRelayError as e:
        _fail(str(e))
    console.print(f"[green]Pulled {name}[/green]")


@models_app.command("delete")
def models_delete(name: str = typer.Argument(..., help="Model name")) -> None:
    """Remove an installed model."""
    try:
        asyncio.run(_delete_model(name))
    except AgentRelayError as e:
        _fail(str(e))
    console.print(f"[green]Deleted {name}[/green]")


# -- chats ---------------------------------------------------------------


@chats_app.command("list")
def chats_list() -> None:
    """List saved chats, newest first."""
    try:
        chats = _chat_store().list_chats()
    except SessionError as e:
        _fail(str(e))

    table = Table(title="Chats", show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Project")
    table.add_column("Created")
    table.add_column("Messages", justify="right")
    for item in chats:
        table.add_row(
            item.id,
            item.name,
            item.project_name,
            item.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(len(item.messages)),
        )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    from agent_relay import __version__
    console.print(f"Agent Relay v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
