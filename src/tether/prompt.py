"""System prompt loading."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from tether.errors import ClassifiedError, ErrorKind
from tether.tools.registry import NO_DESCRIPTION, ToolDescriptor

DEFAULT_SYSTEM_PROMPT = """You are a helpful assistant with access to external tools.

Use a tool whenever it gives a more accurate or current answer than you could on your own.
Call several tools at once when their results do not depend on each other.
If a tool returns an error, explain what went wrong and suggest a next step instead of retrying blindly.
Answer in Markdown and keep replies concise."""


def read_prompt_file(path: Path) -> str:
    """Read the prompt file, falling back to the default prompt when it is missing.

    Raises:
        ClassifiedError: ``PROMPT_FILE_ERROR`` when the file exists but cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        logger.warning("prompt.file.missing path={} using default prompt", path)
        return DEFAULT_SYSTEM_PROMPT
    except (OSError, UnicodeDecodeError) as exc:
        raise ClassifiedError(
            ErrorKind.PROMPT_FILE_ERROR,
            details=f"{path}: {exc}",
            original=exc,
        ) from exc


def render_tool_inventory(tools: Sequence[ToolDescriptor]) -> str:
    if not tools:
        return "## Tools Available (0)\nNo tools available."

    entries: list[str] = []
    for index, tool in enumerate(tools, start=1):
        properties = tool.schema.get("properties")
        params = ", ".join(properties) if isinstance(properties, dict) and properties else "None"
        entries.append(
            f"### {index}. `{tool.name}`\n{tool.description or NO_DESCRIPTION}\n*Params*: {params}\n"
        )
    return f"## Tools Available ({len(tools)})\n" + "\n".join(entries)


def build_system_prompt(path: Path, tools: Sequence[ToolDescriptor]) -> str:
    """Prompt file body followed by the tool inventory."""
    body = read_prompt_file(path)
    return f"{body}\n\n---\n{render_tool_inventory(tools)}"
