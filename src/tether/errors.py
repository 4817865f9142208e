"""Error taxonomy and failure classification for tether."""

from __future__ import annotations

import json
import socket
from enum import Enum
from typing import Any

import httpx

API_KEY_ENV = "TETHER_API_KEY"
DETAIL_PREVIEW_LIMIT = 150


class ErrorKind(str, Enum):
    """Normalized failure kinds."""

    BAD_REQUEST = "bad_request"
    API_AUTH_ERROR = "api_auth_error"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_ERROR = "network_error"
    TOOL_SERVER_ERROR = "tool_server_error"
    TOOL_NOT_FOUND = "tool_not_found"
    INVALID_TOOL_ARGS = "invalid_tool_args"
    TOOL_ROUNDS_EXCEEDED = "tool_rounds_exceeded"
    CONFIG_ERROR = "config_error"
    PROMPT_FILE_ERROR = "prompt_file_error"
    UNKNOWN_ERROR = "unknown_error"


ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.BAD_REQUEST: "Invalid request sent to the API. Please check the input or parameters.",
    ErrorKind.API_AUTH_ERROR: f"Authentication failed. Please check your API key ({API_KEY_ENV}).",
    ErrorKind.NOT_FOUND: "The requested API endpoint or resource was not found.",
    ErrorKind.TIMEOUT: "The request timed out. The network or API might be slow. Please try again.",
    ErrorKind.CONFLICT: "A conflict occurred. This might be due to concurrent operations.",
    ErrorKind.RATE_LIMITED: "API rate limit exceeded. Please wait a moment and try again.",
    ErrorKind.API_ERROR: "An unexpected error occurred on the API server side. Please try again later.",
    ErrorKind.SERVICE_UNAVAILABLE: "The API service is temporarily unavailable. Please try again later.",
    ErrorKind.NETWORK_ERROR: "Network error. Please check your internet connection and try again.",
    ErrorKind.TOOL_SERVER_ERROR: "Error communicating with or executing the tool server.",
    ErrorKind.TOOL_NOT_FOUND: "The requested tool could not be found.",
    ErrorKind.INVALID_TOOL_ARGS: "Invalid arguments provided for the tool.",
    ErrorKind.TOOL_ROUNDS_EXCEEDED: "The model kept requesting tools without producing an answer.",
    ErrorKind.CONFIG_ERROR: "Configuration error. Please check environment variables or setup.",
    ErrorKind.PROMPT_FILE_ERROR: "Error reading the system prompt file.",
    ErrorKind.UNKNOWN_ERROR: "An unexpected error occurred. Please try again.",
}

STATUS_KIND_MAP: dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.API_AUTH_ERROR,
    403: ErrorKind.API_AUTH_ERROR,
    404: ErrorKind.NOT_FOUND,
    408: ErrorKind.TIMEOUT,
    409: ErrorKind.CONFLICT,
    429: ErrorKind.RATE_LIMITED,
    500: ErrorKind.API_ERROR,
    502: ErrorKind.SERVICE_UNAVAILABLE,
    503: ErrorKind.SERVICE_UNAVAILABLE,
    504: ErrorKind.TIMEOUT,
}

RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.TIMEOUT,
    ErrorKind.SERVICE_UNAVAILABLE,
    ErrorKind.API_ERROR,
    ErrorKind.NETWORK_ERROR,
})

_NETWORK_MESSAGE_MARKERS = ("connection refused", "failed to fetch")


class TetherError(Exception):
    """Base exception for tether."""


class ClassifiedError(TetherError):
    """Normalized failure record.

    Instances are produced by :func:`classify` and are never mutated afterwards.
    Classifying a ``ClassifiedError`` again returns the same object.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        *,
        details: str | None = None,
        status: int | None = None,
        retryable: bool | None = None,
        offline: bool = False,
        original: BaseException | None = None,
    ) -> None:
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        self.details = details
        self.status = status
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else retryable
        self.offline = offline
        self.original = original
        super().__init__(self.message)

    @property
    def session_fatal(self) -> bool:
        """Authentication failures end the whole session, not only the turn."""
        return self.kind is ErrorKind.API_AUTH_ERROR

    def to_payload(self) -> dict[str, Any]:
        return {"error": True, "kind": self.kind.value, "message": describe(self, max_detail=None)}

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self.kind.value!r}, status={self.status!r}, "
            f"retryable={self.retryable!r}, message={self.message!r})"
        )


class ToolServerError(TetherError):
    """Failure raised by the tool-server client.

    Carries the request URL and, for HTTP failures, the response so the
    classifier can read the status code and the server's error body.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str,
        response: httpx.Response | None = None,
        details: str | None = None,
    ) -> None:
        self.url = url
        self.response = response
        self.status = response.status_code if response is not None else None
        self.details = details
        super().__init__(message)


class ToolCallError(TetherError):
    """Local failure while preparing a tool call (lookup or argument checks)."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        self.details = details
        super().__init__(message)


def is_network_error(failure: BaseException) -> bool:
    """Return True for connectivity failures (refused, DNS, transport I/O, offline)."""
    if getattr(failure, "offline", False) is True:
        return True
    if isinstance(failure, (httpx.NetworkError, ConnectionError, socket.gaierror)):
        return True
    text = str(failure).lower()
    return any(marker in text for marker in _NETWORK_MESSAGE_MARKERS)


def classify(
    failure: BaseException,
    default_kind: ErrorKind = ErrorKind.UNKNOWN_ERROR,
    *,
    tool_server_url: str | None = None,
) -> ClassifiedError:
    """Turn any failure into a :class:`ClassifiedError`."""
    if isinstance(failure, ClassifiedError):
        return failure

    if is_network_error(failure):
        return ClassifiedError(
            ErrorKind.NETWORK_ERROR,
            details=str(failure) or None,
            retryable=True,
            offline=True,
            original=failure,
        )

    status = _status_of(failure)
    kind = default_kind
    if status is not None and status in STATUS_KIND_MAP:
        kind = STATUS_KIND_MAP[status]
    elif isinstance(failure, (httpx.TimeoutException, TimeoutError)):
        kind = ErrorKind.TIMEOUT

    server_message = _server_message(failure)
    message = server_message or ERROR_MESSAGES[kind]
    details = _details_of(failure, message)

    if _from_tool_server(failure, tool_server_url):
        tool_details = server_message or details
        message = ERROR_MESSAGES[ErrorKind.TOOL_SERVER_ERROR]
        if tool_details:
            message = f"{message} Details: {tool_details}"
        return ClassifiedError(
            ErrorKind.TOOL_SERVER_ERROR,
            message,
            details=tool_details,
            status=status,
            retryable=False,
            original=failure,
        )

    return ClassifiedError(kind, message, details=details, status=status, original=failure)


def describe(error: BaseException, *, max_detail: int | None = DETAIL_PREVIEW_LIMIT) -> str:
    """Render a user-facing message, appending details when they add information."""
    classified = classify(error)
    message = classified.message
    details = classified.details
    if not details or details == message or details in message:
        return message
    if max_detail is not None and len(details) > max_detail:
        details = details[:max_detail] + "..."
    return f"{message} (Details: {details})"


def _from_tool_server(failure: BaseException, tool_server_url: str | None) -> bool:
    if isinstance(failure, ToolServerError):
        return True
    return bool(tool_server_url) and tool_server_url in str(failure)


def _status_of(failure: BaseException) -> int | None:
    response = getattr(failure, "response", None)
    if isinstance(response, httpx.Response):
        return response.status_code
    for attr in ("status", "status_code"):
        value = getattr(failure, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _server_message(failure: BaseException) -> str | None:
    body: Any = getattr(failure, "body", None)
    response = getattr(failure, "response", None)
    if body is None and isinstance(response, httpx.Response):
        try:
            body = response.json()
        except (ValueError, httpx.StreamError):
            return None
    if isinstance(body, list) and body and isinstance(body[0], dict):
        body = body[0]
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
        return error["message"]
    if isinstance(error, str) and error:
        return error
    for key in ("detail", "message"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _details_of(failure: BaseException, message: str) -> str | None:
    details = getattr(failure, "details", None)
    if details is not None:
        if isinstance(details, str):
            return details or None
        return json.dumps(details, ensure_ascii=False, default=str)
    text = str(failure)
    if text and text != message:
        return text
    return None
