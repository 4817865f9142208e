"""Token estimation used when the endpoint does not report usage."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from tether.messages import Message

FALLBACK_ENCODING = "o200k_base"


class TokenCounter(Protocol):
    def count_text(self, text: str) -> int: ...

    def count_messages(self, messages: Sequence[Message]) -> int: ...


class TiktokenCounter:
    """Token counter using tiktoken.

    Models unknown to tiktoken (Gemini, local models) fall back to the
    ``o200k_base`` encoding, so counts are estimates.
    """

    def __init__(self, model: str = "gpt-4o", encoding_name: str | None = None) -> None:
        import tiktoken

        if encoding_name is not None:
            self._enc = tiktoken.get_encoding(encoding_name)
        else:
            try:
                self._enc = tiktoken.encoding_for_model(model)
            except KeyError:
                self._enc = tiktoken.get_encoding(FALLBACK_ENCODING)

    @property
    def encoding_name(self) -> str:
        return self._enc.name

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text))

    def count_messages(self, messages: Sequence[Message]) -> int:
        """Count tokens in a history including per-message overhead.

        3 tokens per message, 1 per ``name`` field and 3 for the reply primer.
        Tool-call names and arguments count as content.
        """
        if not messages:
            return 0

        total = 0
        for message in messages:
            total += 3
            total += self.count_text(message.content or "")
            for call in message.tool_calls:
                total += self.count_text(call.name) + self.count_text(call.arguments)
            if message.name:
                total += self.count_text(message.name) + 1
        total += 3
        return total


class NullTokenCounter:
    """Token counter that always returns 0."""

    def count_text(self, text: str) -> int:
        return 0

    def count_messages(self, messages: Sequence[Message]) -> int:
        return 0
