"""Conversation message types."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]


@dataclass(frozen=True)
class ToolCallRequest:
    """One tool call requested by the model."""

    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, index: int = 0) -> ToolCallRequest:
        function = payload.get("function")
        if not isinstance(function, Mapping):
            function = {}
        arguments = function.get("arguments")
        if arguments is None:
            arguments = ""
        elif not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return cls(
            id=str(payload.get("id") or f"call_{index}"),
            name=str(function.get("name") or ""),
            arguments=arguments,
            type=str(payload.get("type") or "function"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class Message:
    """A single entry of the conversation history.

    ``raw`` keeps the endpoint's original message dict so assistant messages are
    sent back exactly as they were received.
    """

    role: Role
    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    raw: Mapping[str, Any] | None = field(default=None, compare=False, repr=False)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str | None, tool_calls: tuple[ToolCallRequest, ...] = ()) -> Message:
        return cls(role="assistant", content=content, tool_calls=tool_calls)

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Message:
        raw_calls = payload.get("tool_calls") or []
        tool_calls = tuple(
            ToolCallRequest.from_payload(call, index=idx)
            for idx, call in enumerate(raw_calls)
            if isinstance(call, Mapping)
        )
        content = payload.get("content")
        if content is not None and not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        raw = dict(payload)
        if any(not (isinstance(call, Mapping) and call.get("id")) for call in raw_calls):
            # Assigned ids must be echoed back so tool results can answer them.
            raw["tool_calls"] = [call.to_payload() for call in tool_calls]
        return cls(
            role=payload.get("role") or "assistant",
            content=content,
            tool_calls=tool_calls,
            tool_call_id=payload.get("tool_call_id"),
            name=payload.get("name"),
            raw=raw,
        )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_payload(self) -> dict[str, Any]:
        if self.raw is not None:
            return dict(self.raw)
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            payload["name"] = self.name
        return payload
