"""Session tool registry."""

from __future__ import annotations

import asyncio
import builtins
import inspect
import json
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

NO_DESCRIPTION = "(No description provided)"


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text

    available = width - len(placeholder)
    if available <= 0:
        return placeholder

    return text[:available] + placeholder


def empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


class Tool(Protocol):
    """Invocation capability bound to one tool name."""

    def describe(self) -> ToolDescriptor: ...

    async def invoke(self, args: dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class ToolDescriptor:
    """Tool metadata and runtime handle."""

    name: str
    description: str
    parameters: Mapping[str, Any] | None
    tool: Tool
    source: str = "local"

    @property
    def schema(self) -> dict[str, Any]:
        if isinstance(self.parameters, Mapping):
            return dict(self.parameters)
        return empty_schema()

    def to_spec(self) -> dict[str, Any]:
        """Export in the completion endpoint's function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or NO_DESCRIPTION,
                "parameters": self.schema,
            },
        }


class LocalTool:
    """In-process tool backed by a plain callable taking keyword arguments."""

    def __init__(
        self,
        name: str,
        handler: Callable[..., Any],
        *,
        description: str = "",
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        self.name = name
        self._handler = handler
        self._description = description
        self._parameters = parameters

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self._description,
            parameters=self._parameters,
            tool=self,
            source="local",
        )

    async def invoke(self, args: dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(self._handler):
            return await self._handler(**args)
        result = await asyncio.to_thread(self._handler, **args)
        if inspect.isawaitable(result):
            result = await result
        return result


class ToolRegistry:
    """Tools available for one session, keyed by name in load order."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}

    def register(self, tool: Tool) -> ToolDescriptor:
        descriptor = tool.describe()
        if descriptor.name in self._tools:
            raise ValueError(f"Duplicate tool name: {descriptor.name}")
        self._tools[descriptor.name] = descriptor
        return descriptor

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> builtins.list[ToolDescriptor]:
        return list(self._tools.values())

    def names(self) -> builtins.list[str]:
        return list(self._tools.keys())

    def model_tools(self) -> builtins.list[dict[str, Any]]:
        return [descriptor.to_spec() for descriptor in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, *, kwargs: dict[str, Any]) -> Any:
        descriptor = self.get(name)
        if descriptor is None:
            raise KeyError(name)

        self._log_tool_call(name, kwargs)
        start = time.monotonic()
        try:
            return await descriptor.tool.invoke(kwargs)
        except Exception:
            logger.exception("tool.call.error name={}", name)
            raise
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", name, duration * 1000)

    def _log_tool_call(self, name: str, kwargs: dict[str, Any]) -> None:
        params: list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            params.append(f"{key}={_shorten_text(rendered, width=30, placeholder='...')}")
        logger.info("tool.call.start name={} {{ {} }}", name, ", ".join(params))
