"""Unit tests for Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from thinkfolio.config.loader import load_config, validate_config
from thinkfolio.config.settings import Settings
from thinkfolio.utils.errors import ConfigurationError


def _settings(**overrides) -> Settings:
    defaults = {
        "openai_api_key": "",
        "anthropic_api_key": "",
        "ollama_base_url": "http://localhost:11434",
    }
    defaults.update(overrides)
    return Settings(**defaults)


class TestSettings:
    def test_available_providers_in_priority_order(self) -> None:
        settings = _settings(openai_api_key="sk-1", anthropic_api_key="ak-1")

        assert settings.get_available_llm_providers() == ["anthropic", "openai", "ollama"]

    def test_only_ollama_without_keys(self) -> None:
        assert _settings().get_available_llm_providers() == ["ollama"]

    def test_env_variables_are_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_PATH", "/tmp/tf.db")
        monkeypatch.setenv("APP_PORT", "9001")

        settings = Settings()

        assert settings.database_path == "/tmp/tf.db"
        assert settings.app_port == 9001


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())

        assert config["chunking"]["chunk_size"] == 500
        assert config["chunking"]["chunk_overlap"] == 50
        assert config["retrieval"]["default_k"] == 5
        assert config["chat"]["history_window"] == 6

    def test_yaml_overrides_merge_deeply(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("chunking:\n  chunk_size: 800\nretrieval:\n  max_k: 10\n")

        config = load_config(str(path), settings=_settings())

        assert config["chunking"]["chunk_size"] == 800
        assert config["chunking"]["chunk_overlap"] == 50
        assert config["retrieval"]["max_k"] == 10
        assert config["retrieval"]["default_k"] == 5

    def test_settings_are_merged_in(self, tmp_path: Path) -> None:
        settings = _settings(database_path="/srv/tf.db", storage_bucket="docs", anthropic_api_key="ak")

        config = load_config(str(tmp_path / "absent.yaml"), settings=settings)

        assert config["storage"]["database_path"] == "/srv/tf.db"
        assert config["storage"]["bucket"] == "docs"
        assert config["llm"]["available_providers"][0] == "anthropic"

    def test_invalid_yaml_values_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("chunking:\n  chunk_size: 100\n  chunk_overlap: 100\n")

        with pytest.raises(ConfigurationError, match="chunk_overlap"):
            load_config(str(path), settings=_settings())

    def test_non_mapping_yaml_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(str(path), settings=_settings())

    def test_checked_in_config_is_valid(self) -> None:
        config_path = Path(__file__).resolve().parents[2] / "config" / "config.yaml"

        config = load_config(str(config_path), settings=_settings())

        assert config["upload"]["max_file_size"] == 10 * 1024 * 1024


class TestValidateConfig:
    @pytest.fixture()
    def config(self, tmp_path: Path) -> dict:
        return load_config(str(tmp_path / "absent.yaml"), settings=_settings())

    def test_default_k_above_max(self, config: dict) -> None:
        config["retrieval"]["default_k"] = 50

        with pytest.raises(ConfigurationError, match="default_k"):
            validate_config(config)

    def test_collects_all_errors(self, config: dict) -> None:
        config["chat"]["context_char_budget"] = 0
        config["embedding"]["batch_size"] = 0

        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)

        assert "context_char_budget" in exc_info.value.message
        assert "batch_size" in exc_info.value.message
