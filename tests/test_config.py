import json
from pathlib import Path

import pytest

from tether.config import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings, load_settings
from tether.errors import ClassifiedError, ErrorKind


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in ("TETHER_API_KEY", "TETHER_MODEL", "TETHER_PRICING", "TETHER_MAX_RETRIES"):
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    settings = load_settings()

    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.model == DEFAULT_MODEL
    assert settings.tool_server_url == "http://127.0.0.1:8080"
    assert settings.max_retries == 3
    assert settings.initial_retry_delay == 1.0
    assert settings.max_tool_rounds == 25
    assert settings.system_prompt_file == Path("system_prompt.txt")
    assert settings.pricing["gemini-2.0-flash"].input_cost_per_million == 0.35
    assert settings.currency == "USD"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("TETHER_MODEL", "local-model")
    monkeypatch.setenv("TETHER_MAX_RETRIES", "5")
    monkeypatch.setenv(
        "TETHER_PRICING",
        json.dumps({"local-model": {"input_cost_per_million": 1, "output_cost_per_million": 2, "currency": "EUR"}}),
    )

    settings = load_settings()

    assert settings.model == "local-model"
    assert settings.max_retries == 5
    assert settings.currency == "EUR"


def test_dotenv_file_is_read(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("TETHER_API_KEY=from-dotenv\n", encoding="utf-8")

    assert load_settings().require_api_key() == "from-dotenv"


def test_missing_api_key_is_config_error() -> None:
    settings = Settings()

    with pytest.raises(ClassifiedError) as exc_info:
        settings.require_api_key()

    assert exc_info.value.kind is ErrorKind.CONFIG_ERROR
    assert "TETHER_API_KEY" in exc_info.value.message


def test_invalid_values_are_config_errors(monkeypatch) -> None:
    monkeypatch.setenv("TETHER_MAX_RETRIES", "-1")

    with pytest.raises(ClassifiedError) as exc_info:
        load_settings()

    assert exc_info.value.kind is ErrorKind.CONFIG_ERROR
