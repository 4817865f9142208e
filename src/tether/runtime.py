"""Application runtime: settings, clients, tools and the session orchestrator."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from tether.config import Settings, load_settings
from tether.core.cost import CostAccumulator
from tether.core.orchestrator import TurnEvent, TurnOrchestrator
from tether.core.tokens import NullTokenCounter, TiktokenCounter, TokenCounter
from tether.llm.client import CompletionClient
from tether.prompt import build_system_prompt
from tether.tools.registry import ToolDescriptor, ToolRegistry
from tether.tools.remote import ToolServerClient, load_remote_tools


def build_token_counter(model: str) -> TokenCounter:
    try:
        return TiktokenCounter(model)
    except Exception as exc:
        logger.warning("tokens.counter.unavailable model={} {}", model, exc)
        return NullTokenCounter()


class AppRuntime:
    """One interactive session's collaborators.

    Usage::

        async with build_runtime() as runtime:
            await runtime.start(on_event=print)
            result = await runtime.orchestrator.run_turn("hello")
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.registry = ToolRegistry()
        self.cost = CostAccumulator(settings.pricing, settings.currency)
        self.tool_client = ToolServerClient(settings.tool_server_url, timeout=settings.tool_timeout_seconds)
        self.token_counter: TokenCounter = NullTokenCounter()
        self.system_prompt = ""
        self._completion: CompletionClient | None = None
        self._orchestrator: TurnOrchestrator | None = None

    @property
    def orchestrator(self) -> TurnOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("AppRuntime is not started. Call start() first.")
        return self._orchestrator

    async def load_tools(self) -> list[ToolDescriptor]:
        if len(self.registry):
            return self.registry.descriptors()
        return await load_remote_tools(self.tool_client, self.registry)

    async def start(self, *, on_event: Callable[[TurnEvent], None] | None = None) -> TurnOrchestrator:
        """Validate credentials, discover tools, build the prompt and the orchestrator.

        Raises:
            ClassifiedError: ``CONFIG_ERROR``, ``TOOL_SERVER_ERROR`` or ``PROMPT_FILE_ERROR``.
        """
        settings = self.settings
        api_key = settings.require_api_key()
        tools = await self.load_tools()
        self.system_prompt = build_system_prompt(settings.system_prompt_file, tools)
        self.token_counter = build_token_counter(settings.model)
        self._completion = CompletionClient(
            api_key=api_key,
            base_url=settings.base_url,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            max_retries=settings.max_retries,
            initial_delay=settings.initial_retry_delay,
            timeout=settings.request_timeout_seconds,
            tool_server_url=settings.tool_server_url,
        )
        self._orchestrator = TurnOrchestrator(
            self._completion,
            self.registry,
            self.cost,
            system_prompt=self.system_prompt,
            max_tool_rounds=settings.max_tool_rounds,
            token_counter=self.token_counter,
            on_event=on_event,
            tool_server_url=settings.tool_server_url,
        )
        logger.info("runtime.started model={} tools={}", settings.model, len(tools))
        return self._orchestrator

    async def aclose(self) -> None:
        if self._completion is not None:
            await self._completion.aclose()
        await self.tool_client.aclose()

    async def __aenter__(self) -> AppRuntime:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


def build_runtime(*, model: str | None = None, tool_server_url: str | None = None) -> AppRuntime:
    """Build the runtime from environment settings plus command-line overrides."""
    overrides: dict[str, object] = {}
    if model:
        overrides["model"] = model
    if tool_server_url:
        overrides["tool_server_url"] = tool_server_url
    return AppRuntime(load_settings(**overrides))
