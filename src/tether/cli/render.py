"""CLI renderer for tether."""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape

from tether.core.cost import TurnCostRecord
from tether.messages import ToolCallRequest

TOOL_PREVIEW_LIMIT = 200


def _preview(text: str, limit: int = TOOL_PREVIEW_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 10] + "... (truncated)"


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._prompt_session: PromptSession[str] | None = None
        self._print_lock = threading.Lock()

    def info(self, message: str) -> None:
        self._print(message)

    def error(self, message: str) -> None:
        self._print(f"[bold red]Error:[/bold red] {escape(message)}")

    def hint(self, message: str) -> None:
        self._print(f"[yellow]{escape(message)}[/yellow]")

    def welcome(
        self,
        *,
        model: str,
        endpoint: str,
        tools: Sequence[str],
        prompt_file: str,
        prompt_tokens: int,
    ) -> None:
        """Render the session banner."""
        names = escape(", ".join(tools)) or "None"
        self._print("\n[bold]Tether agent initialized[/bold]")
        self._print(f"   [bold]Model:[/bold] [blue]{escape(model)}[/blue]")
        self._print(f"   [bold]Endpoint:[/bold] [blue]{escape(endpoint)}[/blue]")
        self._print(f"   [bold]Tools:[/bold] [blue]{len(tools)}[/blue] ({names})")
        self._print(f"   [bold]System prompt:[/bold] {escape(prompt_file)} [dim]({prompt_tokens} tokens)[/dim]")
        self.hint("   Type '/cost' to see estimated session cost.")
        self.hint("   Type 'quit' or press Ctrl+C to exit.")

    def tool_calls(self, calls: Sequence[ToolCallRequest], cost: TurnCostRecord | None = None) -> None:
        suffix = f" [dim]\\[Est. cost: {cost.format()}][/dim]" if cost is not None else ""
        self._print(f"\n[yellow]Assistant wants to call {len(calls)} tool(s)...[/yellow]{suffix}")
        for call in calls:
            arguments = escape(_preview(call.arguments or "{}"))
            self._print(f"[cyan]  > {escape(call.name)}[/cyan] [dim]{arguments}[/dim]", highlight=False)

    def tool_result(self, name: str, content: str) -> None:
        style = "red" if _is_error_payload(content) else "green"
        self._print(f"[{style}]  < {escape(name)}:[/{style}] {escape(_preview(content))}", highlight=False)

    def assistant_message(self, content: str, cost: TurnCostRecord | None = None) -> None:
        """Render an answer as Markdown."""
        if cost is not None:
            self._print(f"\n[dim]\\[Est. cost: {cost.format()}][/dim]")
        self._print("[bold yellow]Assistant:[/bold yellow]")
        if content.strip():
            with self._print_lock:
                self.console.print(Markdown(content))
        else:
            self._print("[dim](Received response with no text content)[/dim]")

    def assistant_error(self, message: str) -> None:
        self._print("[bold yellow]Assistant:[/bold yellow]")
        self._print(f"[red]{escape(message)}[/red]", highlight=False)

    def session_cost(self, total: str) -> None:
        self._print(f"\n[blue]---\nEstimated total session cost: {escape(total)}\n---[/blue]")

    async def get_user_input(self) -> str:
        """Prompt user for input."""
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout(raw=True):
            return await self._prompt_session.prompt_async("You: ")

    def _print(self, message: str, *, highlight: bool | None = None) -> None:
        with self._print_lock:
            self.console.print(message, highlight=highlight)


def _is_error_payload(content: str) -> bool:
    try:
        payload = json.loads(content)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("error") is True

