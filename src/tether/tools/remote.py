"""Tool server HTTP client and remote tool binding."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from tether.errors import ClassifiedError, ErrorKind, ToolServerError, classify, describe
from tether.tools.registry import ToolDescriptor, ToolRegistry

_SCHEMA_KEYS = ("parametersSchema", "parameters_schema", "parameters")


class ToolServerClient:
    """Async client for the tool server's discovery and call endpoints.

    HTTP failures and malformed bodies are raised as :class:`ToolServerError`;
    transport failures propagate unchanged so they classify as network errors.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def list_tools(self) -> list[str]:
        names = await self._request("GET", "/tools")
        if not isinstance(names, list) or not all(isinstance(name, str) for name in names):
            raise ToolServerError(
                "Tool server did not return a list of tool names.",
                url=f"{self.base_url}/tools",
            )
        return names

    async def describe_tool(self, name: str) -> dict[str, Any]:
        data = await self._request("GET", f"/tools/{quote(name, safe='')}")
        if not isinstance(data, dict):
            raise ToolServerError(
                f"Tool server returned an invalid description for {name}.",
                url=f"{self.base_url}/tools/{name}",
            )
        return data

    async def call_tool(self, name: str, args: Mapping[str, Any]) -> Any:
        data = await self._request(
            "POST",
            f"/tools/{quote(name, safe='')}/call",
            json={"parameters": dict(args)},
        )
        if isinstance(data, dict):
            return data.get("result")
        return None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        response = await self._client.request(method, url, **kwargs)
        if response.is_error:
            raise ToolServerError(
                f"HTTP {response.status_code} {response.reason_phrase} - Request to {url} failed",
                url=url,
                response=response,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ToolServerError(f"Invalid JSON from {url}", url=url, details=str(exc)) from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ToolServerClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


class RemoteTool:
    """A tool executed by the tool server."""

    def __init__(
        self,
        client: ToolServerClient,
        name: str,
        *,
        description: str = "",
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        self.name = name
        self._client = client
        self._description = description
        self._parameters = parameters

    def describe(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self._description,
            parameters=self._parameters,
            tool=self,
            source="remote",
        )

    async def invoke(self, args: dict[str, Any]) -> Any:
        logger.debug("tool.remote.call name={} url={}", self.name, self._client.base_url)
        return await self._client.call_tool(self.name, args)


def _schema_of(description: Mapping[str, Any]) -> Mapping[str, Any] | None:
    for key in _SCHEMA_KEYS:
        schema = description.get(key)
        if isinstance(schema, Mapping):
            return schema
    return None


async def load_remote_tools(client: ToolServerClient, registry: ToolRegistry) -> list[ToolDescriptor]:
    """Discover every tool on the server and register it.

    Raises:
        ClassifiedError: ``TOOL_SERVER_ERROR`` naming the server when discovery fails.
    """
    logger.info("tools.load.start url={}", client.base_url)
    try:
        names = await client.list_tools()
        descriptions = await asyncio.gather(*(client.describe_tool(name) for name in names))
    except Exception as exc:
        error = classify(exc, ErrorKind.TOOL_SERVER_ERROR)
        logger.error("tools.load.failed url={} {}", client.base_url, describe(error))
        raise ClassifiedError(
            ErrorKind.TOOL_SERVER_ERROR,
            f"Could not load tools. Is the tool server running at {client.base_url}?",
            details=describe(error),
            original=exc,
        ) from exc

    loaded: list[ToolDescriptor] = []
    for name, description in zip(names, descriptions, strict=True):
        text = description.get("description")
        tool = RemoteTool(
            client,
            name,
            description=text if isinstance(text, str) else "",
            parameters=_schema_of(description),
        )
        loaded.append(registry.register(tool))
        logger.info("tools.load.tool name={}", name)
    logger.info("tools.load.done count={}", len(loaded))
    return loaded
