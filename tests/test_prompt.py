from pathlib import Path

import pytest

from tether.errors import ClassifiedError, ErrorKind
from tether.prompt import DEFAULT_SYSTEM_PROMPT, build_system_prompt, read_prompt_file
from tether.tools.registry import ToolRegistry


def test_prompt_file_body_and_tool_inventory(tmp_path: Path, registry: ToolRegistry) -> None:
    prompt_file = tmp_path / "system_prompt.txt"
    prompt_file.write_text("You are {name}.\n", encoding="utf-8")

    prompt = build_system_prompt(prompt_file, registry.descriptors())

    assert prompt == (
        "You are {name}.\n\n---\n## Tools Available (2)\n"
        "### 1. `add`\nAdd two integers\n*Params*: a, b\n\n"
        "### 2. `echo`\nEcho text back\n*Params*: None\n"
    )


def test_missing_prompt_file_uses_default(tmp_path: Path) -> None:
    prompt = build_system_prompt(tmp_path / "absent.txt", [])

    assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert prompt.endswith("## Tools Available (0)\nNo tools available.")


def test_unreadable_prompt_file_is_prompt_file_error(tmp_path: Path) -> None:
    with pytest.raises(ClassifiedError) as exc_info:
        read_prompt_file(tmp_path)

    assert exc_info.value.kind is ErrorKind.PROMPT_FILE_ERROR
    assert str(tmp_path) in (exc_info.value.details or "")
