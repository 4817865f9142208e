"""Resolve and run one model-requested tool call.

:func:`invoke` never raises: every failure is folded into the returned tool
message as ``{"error": true, "kind": ..., "message": ...}`` so the caller can
always append a well-formed ``tool`` message to the history.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from loguru import logger

from tether.errors import ClassifiedError, ErrorKind, ToolCallError, classify, describe
from tether.messages import Message, ToolCallRequest
from tether.tools.registry import ToolDescriptor, ToolRegistry

RESULT_PREVIEW_LIMIT = 200
MAX_REPORTED_SCHEMA_ERRORS = 3
UNKNOWN_FUNCTION = "unknown_function"


async def invoke(
    call: ToolCallRequest,
    registry: ToolRegistry,
    *,
    tool_server_url: str | None = None,
) -> Message:
    """Run ``call`` against ``registry`` and return the ``tool`` result message."""
    name = call.name or UNKNOWN_FUNCTION
    try:
        content = await _invoke(call, name, registry, tool_server_url)
    except ToolCallError as exc:
        kind = ErrorKind.TOOL_NOT_FOUND if not registry.has(name) else ErrorKind.INVALID_TOOL_ARGS
        error = classify(exc, kind)
        logger.warning("tool.call.rejected name={} kind={} {}", name, error.kind.value, describe(error))
        content = _error_content(error)
    except Exception as exc:
        error = classify(exc, ErrorKind.TOOL_SERVER_ERROR, tool_server_url=tool_server_url)
        logger.warning("tool.call.failed name={} kind={} {}", name, error.kind.value, describe(error))
        content = _error_content(error, prefix=f"Error in tool {name}: ")
    return Message.tool(call.id, name, content)


async def _invoke(
    call: ToolCallRequest,
    name: str,
    registry: ToolRegistry,
    tool_server_url: str | None,
) -> str:
    if call.type != "function":
        logger.warning("tool.call.unsupported type={} name={}", call.type, name)
        error = ClassifiedError(ErrorKind.UNKNOWN_ERROR, f"Unsupported tool call type: {call.type}")
        return _error_content(error)

    descriptor = registry.get(name)
    if descriptor is None:
        available = ", ".join(registry.names()) or "none"
        raise ToolCallError(f"Tool '{name}' not found. Available tools: {available}")

    args = parse_arguments(call.arguments, tool_name=name)
    validate_arguments(args, descriptor)

    result = await registry.execute(name, kwargs=args)
    content = json.dumps(result, ensure_ascii=False, default=str)
    preview = content
    if len(preview) > RESULT_PREVIEW_LIMIT:
        preview = preview[: RESULT_PREVIEW_LIMIT - 10] + "... (truncated)"
    logger.info("tool.call.result name={} {}", name, preview)
    return content


def parse_arguments(raw: str, *, tool_name: str) -> dict[str, Any]:
    """Parse the model's raw argument text into a JSON object."""
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ToolCallError(
            f"Invalid JSON arguments provided for tool {tool_name}. Check the format.",
            details=f"Invalid JSON arguments for tool {tool_name}: {exc}",
        ) from exc
    if not isinstance(parsed, dict):
        raise ToolCallError(
            f"Arguments for tool {tool_name} must be a JSON object.",
            details=f"Arguments for tool {tool_name} must be a JSON object, got {type(parsed).__name__}",
        )
    return parsed


def validate_arguments(args: dict[str, Any], descriptor: ToolDescriptor) -> None:
    """Check ``args`` against the tool's parameter schema when it declares one."""
    schema = descriptor.parameters
    if not isinstance(schema, Mapping) or not schema:
        return
    validator_cls = validator_for(schema, default=Draft7Validator)
    try:
        validator_cls.check_schema(schema)
    except SchemaError as exc:
        logger.warning("tool.schema.invalid name={} {}", descriptor.name, exc.message)
        return

    errors = list(validator_cls(schema).iter_errors(args))
    if not errors:
        return
    reported = "; ".join(
        f"{error.json_path}: {error.message}" for error in errors[:MAX_REPORTED_SCHEMA_ERRORS]
    )
    raise ToolCallError(
        f"Arguments for tool {descriptor.name} do not match its schema.",
        details=f"Arguments for tool {descriptor.name} do not match its schema: {reported}",
    )


def _error_content(error: ClassifiedError, *, prefix: str = "") -> str:
    payload = error.to_payload()
    payload["message"] = f"{prefix}{payload['message']}"
    return json.dumps(payload, ensure_ascii=False)
