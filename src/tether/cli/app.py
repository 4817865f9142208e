"""CLI main module for tether."""

from __future__ import annotations

import asyncio
from typing import Annotated, NoReturn

import typer
from rich.markup import escape
from rich.table import Table

from tether.errors import API_KEY_ENV, ClassifiedError, ErrorKind, describe
from tether.logging_utils import configure_logging
from tether.runtime import AppRuntime, build_runtime

from .interactive import InteractiveCli
from .render import Renderer

app = typer.Typer(
    name="tether",
    help="Chat with a model that can call tools from a tool server.",
    add_completion=False,
    rich_markup_mode="rich",
)

ModelOption = Annotated[str | None, typer.Option("--model", "-m", help="Model name override.")]
ToolServerOption = Annotated[str | None, typer.Option("--tool-server", help="Tool server base URL override.")]
LogLevelOption = Annotated[str | None, typer.Option("--log-level", help="Log level override.")]


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        # Default to chat mode
        chat()


def _startup_hint(error: ClassifiedError, runtime: AppRuntime | None) -> str | None:
    if error.kind is ErrorKind.CONFIG_ERROR:
        return f"Set {API_KEY_ENV} in your environment or .env file."
    if error.kind in (ErrorKind.TOOL_SERVER_ERROR, ErrorKind.NETWORK_ERROR):
        url = runtime.settings.tool_server_url if runtime is not None else "the configured URL"
        return f"Check that the tool server is running at {url}."
    if error.kind is ErrorKind.PROMPT_FILE_ERROR:
        return "Check the file named by TETHER_SYSTEM_PROMPT_FILE."
    return None


def _exit_with_error(renderer: Renderer, error: ClassifiedError, runtime: AppRuntime | None = None) -> NoReturn:
    renderer.error(describe(error, max_detail=None))
    hint = _startup_hint(error, runtime)
    if hint:
        renderer.hint(hint)
    raise typer.Exit(1)


def _load_runtime(
    renderer: Renderer,
    model: str | None,
    tool_server_url: str | None,
    log_level: str | None,
) -> AppRuntime:
    try:
        runtime = build_runtime(model=model, tool_server_url=tool_server_url)
    except ClassifiedError as error:
        configure_logging(log_level or "WARNING")
        _exit_with_error(renderer, error)
    configure_logging(log_level or runtime.settings.log_level)
    return runtime


async def _run_chat(runtime: AppRuntime, renderer: Renderer) -> int:
    async with runtime:
        return await InteractiveCli(runtime, renderer).run()


async def _load_tools(runtime: AppRuntime) -> None:
    async with runtime:
        await runtime.load_tools()


@app.command()
def chat(
    model: ModelOption = None,
    tool_server: ToolServerOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Start an interactive chat session."""
    renderer = Renderer()
    runtime = _load_runtime(renderer, model, tool_server, log_level)
    try:
        exit_code = asyncio.run(_run_chat(runtime, renderer))
    except ClassifiedError as error:
        _exit_with_error(renderer, error, runtime)
    except KeyboardInterrupt:
        # Interrupted mid-turn; the prompt handles Ctrl-C between turns.
        renderer.session_cost(runtime.cost.format_total())
        renderer.info("\n[bold]Exiting tether. Goodbye![/bold]")
        return
    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def tools(
    tool_server: ToolServerOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List the tools discovered on the tool server."""
    renderer = Renderer()
    runtime = _load_runtime(renderer, None, tool_server, log_level)
    try:
        asyncio.run(_load_tools(runtime))
    except ClassifiedError as error:
        _exit_with_error(renderer, error, runtime)

    table = Table(title=f"Tools at {escape(runtime.settings.tool_server_url)}")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Params", style="dim")
    for descriptor in runtime.registry.descriptors():
        properties = descriptor.schema.get("properties")
        params = ", ".join(properties) if isinstance(properties, dict) and properties else "None"
        table.add_row(escape(descriptor.name), escape(descriptor.description), escape(params))
    renderer.console.print(table)
