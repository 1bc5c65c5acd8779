"""Tests for infinite_chronicles.config."""

import json

import pytest

from infinite_chronicles.config import (
    ConfigurationError,
    build_llm,
    get_config,
    resolve_api_key,
    update_config,
    validate_config,
)
from infinite_chronicles.llm import DEFAULT_MODEL, HttpLLM


class TestGetConfig:
    def test_defaults(self, tmp_path) -> None:
        config = get_config(tmp_path)
        assert config["model"] == DEFAULT_MODEL
        assert config["provider_format"] == "gemini"
        assert config["summary_interval"] == 5
        assert config["grand_summary_interval"] == 20
        assert config["language"] == "English"

    def test_without_data_dir(self) -> None:
        assert get_config()["recent_segments"] == 2

    def test_env_overrides_defaults(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("LLM_MODEL", "other-model")
        monkeypatch.setenv("LLM_TIMEOUT", "30")
        config = get_config(tmp_path)
        assert config["model"] == "other-model"
        assert config["timeout"] == 30.0

    def test_stored_overrides_env(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("LLM_MODEL", "env-model")
        (tmp_path / "config.json").write_text(json.dumps({"model": "stored-model"}))
        assert get_config(tmp_path)["model"] == "stored-model"

    def test_unknown_stored_keys_ignored(self, tmp_path) -> None:
        (tmp_path / "config.json").write_text(json.dumps({"colour": "red"}))
        assert "colour" not in get_config(tmp_path)

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path, caplog) -> None:
        (tmp_path / "config.json").write_text("{not json")
        assert get_config(tmp_path)["summary_interval"] == 5
        assert "config.json" in caplog.text

    def test_non_object_file_ignored(self, tmp_path) -> None:
        (tmp_path / "config.json").write_text("[1, 2]")
        assert get_config(tmp_path)["model"] == DEFAULT_MODEL

    def test_invalid_values_reset(self, tmp_path, caplog) -> None:
        (tmp_path / "config.json").write_text(json.dumps({
            "summary_interval": 0, "grand_summary_interval": "often",
            "recent_segments": 3, "provider_format": "smoke-signals", "timeout": -1,
        }))
        config = get_config(tmp_path)
        assert config["summary_interval"] == 5
        assert config["grand_summary_interval"] == 20
        assert config["recent_segments"] == 3
        assert config["provider_format"] == "gemini"
        assert config["timeout"] == 120.0
        assert "summary_interval" in caplog.text

    def test_non_numeric_env_timeout_ignored(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("LLM_TIMEOUT", "soon")
        assert get_config(tmp_path)["timeout"] == 120.0


class TestValidateConfig:
    def test_keeps_valid_values(self) -> None:
        config = {"summary_interval": 3, "context_chars": 0, "language": "French"}
        assert validate_config(config) == config

    def test_bool_is_not_an_interval(self) -> None:
        assert validate_config({"summary_interval": True})["summary_interval"] == 5


class TestUpdateConfig:
    def test_persists_known_keys(self, tmp_path) -> None:
        config = update_config(tmp_path, {"language": "German", "summary_interval": 3})
        assert config["language"] == "German"
        stored = json.loads((tmp_path / "config.json").read_text())
        assert stored == {"language": "German", "summary_interval": 3}

    def test_merges_with_existing(self, tmp_path) -> None:
        update_config(tmp_path, {"language": "German"})
        config = update_config(tmp_path, {"model": "m2"})
        assert config["language"] == "German"
        assert config["model"] == "m2"

    def test_drops_unknown_keys(self, tmp_path, caplog) -> None:
        update_config(tmp_path, {"colour": "red"})
        stored = json.loads((tmp_path / "config.json").read_text())
        assert stored == {}
        assert "colour" in caplog.text

    def test_drops_invalid_values(self, tmp_path) -> None:
        config = update_config(tmp_path, {"summary_interval": -2, "language": "Dutch"})
        assert config["summary_interval"] == 5
        stored = json.loads((tmp_path / "config.json").read_text())
        assert stored == {"language": "Dutch"}


class TestResolveApiKey:
    def test_user_key_wins(self, monkeypatch) -> None:
        monkeypatch.setenv("API_KEY", "env-key")
        assert resolve_api_key("user-key") == "user-key"

    def test_env_fallback(self, monkeypatch) -> None:
        monkeypatch.setenv("GEMINI_API_KEY", "gem-key")
        assert resolve_api_key(None) == "gem-key"

    def test_missing_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="No API key"):
            resolve_api_key("")


def test_build_llm(tmp_path) -> None:
    llm = build_llm(get_config(tmp_path), "k")
    assert isinstance(llm, HttpLLM)
