"""OpenAI-compatible chat completion client with classified retry.

One call to :meth:`CompletionClient.complete` is one logical request: transient
failures are retried with exponential backoff through ``tenacity``, every
failure is normalized by :func:`tether.errors.classify`, and the caller only
ever sees a successful :class:`CompletionResult` or a ``ClassifiedError``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
import tenacity
from loguru import logger

from tether.errors import ClassifiedError, ErrorKind, classify, describe
from tether.messages import Message

Sleep = Callable[[float], Awaitable[None]]

UNEXPECTED_RESPONSE = "API returned an unexpected response structure."


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the endpoint for one call."""

    prompt_tokens: int
    completion_tokens: int

    @classmethod
    def from_payload(cls, payload: object) -> TokenUsage | None:
        if not isinstance(payload, Mapping):
            return None
        prompt = payload.get("prompt_tokens")
        completion = payload.get("completion_tokens")
        if not isinstance(prompt, int) or not isinstance(completion, int):
            return None
        return cls(prompt_tokens=prompt, completion_tokens=completion)


@dataclass(frozen=True)
class CompletionResult:
    """First choice of a successful completion plus reported usage."""

    message: Message
    usage: TokenUsage | None = None


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ClassifiedError) and exc.retryable


class CompletionClient:
    """Async httpx client for OpenAI-compatible ``/chat/completions``.

    Usage::

        async with CompletionClient(api_key="...", base_url=url, model="gemini-2.0-flash") as client:
            result = await client.complete(history, tool_specs)
            print(result.message.content)
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        timeout: float = 120.0,
        tool_server_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._tool_server_url = tool_server_url
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    async def complete(
        self,
        history: Sequence[Message],
        tool_specs: Sequence[Mapping[str, Any]] = (),
    ) -> CompletionResult:
        """Send the history and return the first choice, retrying transient failures.

        Raises:
            ClassifiedError: When the failure is not retryable or retries are exhausted.
        """
        payload = self._build_payload(history, tool_specs)
        attempts = 0

        async def _attempt() -> CompletionResult:
            nonlocal attempts
            attempts += 1
            logger.info(
                "llm.call.start model={} attempt={}/{} messages={}",
                self._model,
                attempts,
                self._max_retries + 1,
                len(history),
            )
            try:
                result = await self._send(payload)
            except ClassifiedError as error:
                logger.warning(
                    "llm.call.error attempt={} kind={} retryable={} {}",
                    attempts,
                    error.kind.value,
                    error.retryable,
                    describe(error),
                )
                raise
            logger.info("llm.call.ok model={} tool_calls={}", self._model, len(result.message.tool_calls))
            return result

        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=tenacity.wait_exponential(multiplier=self._initial_delay, exp_base=2),
            stop=tenacity.stop_after_attempt(self._max_retries + 1),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return await retryer(_attempt)
        except ClassifiedError as error:
            if error.retryable:
                logger.error("llm.call.failed kind={} max_retries={} reached", error.kind.value, self._max_retries)
            else:
                logger.error("llm.call.failed kind={} not retryable", error.kind.value)
            raise

    async def _send(self, payload: dict[str, Any]) -> CompletionResult:
        try:
            response = await self._client.post(f"{self._base_url}/chat/completions", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise classify(exc, tool_server_url=self._tool_server_url) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ClassifiedError(ErrorKind.API_ERROR, details=UNEXPECTED_RESPONSE, original=exc) from exc
        return self._parse_response(data)

    def _build_payload(
        self,
        history: Sequence[Message],
        tool_specs: Sequence[Mapping[str, Any]],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [message.to_payload() for message in history],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        if tool_specs:
            payload["tools"] = [dict(spec) for spec in tool_specs]
            payload["tool_choice"] = "auto"
        return payload

    @staticmethod
    def _parse_response(data: object) -> CompletionResult:
        choices = data.get("choices") if isinstance(data, Mapping) else None
        if not isinstance(choices, list) or not choices:
            raise ClassifiedError(ErrorKind.API_ERROR, details=UNEXPECTED_RESPONSE)
        first = choices[0]
        message = first.get("message") if isinstance(first, Mapping) else None
        if not isinstance(message, Mapping):
            raise ClassifiedError(ErrorKind.API_ERROR, details=UNEXPECTED_RESPONSE)
        tool_calls = message.get("tool_calls")
        if tool_calls is not None and not isinstance(tool_calls, list):
            raise ClassifiedError(ErrorKind.API_ERROR, details=UNEXPECTED_RESPONSE)
        usage = TokenUsage.from_payload(data.get("usage"))  # type: ignore[union-attr]
        return CompletionResult(message=Message.from_payload(message), usage=usage)

    @staticmethod
    def _log_retry(retry_state: tenacity.RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
        logger.warning(
            "llm.call.retry attempt={} delay={:.1f}s",
            retry_state.attempt_number + 1,
            delay,
        )

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> CompletionClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
