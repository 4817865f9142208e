"""Interactive chat loop."""

from __future__ import annotations

from loguru import logger

from tether.core.orchestrator import TurnEvent
from tether.runtime import AppRuntime

from .render import Renderer

QUIT_COMMANDS = frozenset({"quit"})
COST_COMMAND = "/cost"


class InteractiveCli:
    """Reads operator lines and runs one turn per line until quit or a session-ending error."""

    def __init__(self, runtime: AppRuntime, renderer: Renderer | None = None) -> None:
        self._runtime = runtime
        self._renderer = renderer or Renderer()

    async def run(self) -> int:
        """Run the session and return the process exit code.

        Raises:
            ClassifiedError: When the runtime cannot start.
        """
        orchestrator = await self._runtime.start(on_event=self._on_event)
        self._render_banner()

        exit_code = 0
        while True:
            try:
                raw = await self._renderer.get_user_input()
            except (KeyboardInterrupt, EOFError):
                break

            text = raw.strip()
            if text.lower() in QUIT_COMMANDS:
                break
            if text.lower() == COST_COMMAND:
                self._renderer.session_cost(self._runtime.cost.format_total())
                continue
            if not text:
                continue

            result = await orchestrator.run_turn(text)
            if result is not None and result.session_ended:
                logger.error("session.ended kind={}", result.error.kind.value if result.error else "unknown")
                exit_code = 1
                break

        self._renderer.session_cost(self._runtime.cost.format_total())
        self._renderer.info("\n[bold]Exiting tether. Goodbye![/bold]")
        return exit_code

    def _render_banner(self) -> None:
        settings = self._runtime.settings
        self._renderer.welcome(
            model=settings.model,
            endpoint=settings.base_url,
            tools=self._runtime.registry.names(),
            prompt_file=str(settings.system_prompt_file),
            prompt_tokens=self._runtime.token_counter.count_text(self._runtime.system_prompt),
        )

    def _on_event(self, event: TurnEvent) -> None:
        if event.kind == "tool_calls":
            self._renderer.tool_calls(event.tool_calls, event.cost)
        elif event.kind == "tool_result" and event.message is not None:
            self._renderer.tool_result(event.message.name or "", event.text)
        elif event.kind == "answer":
            self._renderer.assistant_message(event.text, event.cost)
        elif event.kind == "error":
            if event.error is not None and event.error.session_fatal:
                self._renderer.error(event.text)
            else:
                self._renderer.assistant_error(event.text)
