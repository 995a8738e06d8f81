"""
Unit tests for the config module.
"""

import json

import pytest

from chat_recall.core.config import Config


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("DATABASE_URL", "OPENAI_API_KEY", "EMBEDDING_MODEL"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestConfig:
    """Tests for Config loading and overrides."""

    def test_creates_settings_file_with_defaults(self, tmp_path, clean_env):
        config = Config(config_dir=tmp_path)

        saved = json.loads((tmp_path / "rag_settings.json").read_text())
        assert saved["chunk_target_chars"] == 1000
        assert config.get("final_k") == 50
        assert config.get("lexical_limit") == 5000
        assert config.get("match_threshold") == 0.2

    def test_partial_file_keeps_defaults(self, tmp_path, clean_env):
        (tmp_path / "rag_settings.json").write_text(json.dumps({"final_k": 20}))

        config = Config(config_dir=tmp_path)

        assert config.get("final_k") == 20
        assert config.get("embedding_batch_size") == 64

    def test_set_persists(self, tmp_path, clean_env):
        Config(config_dir=tmp_path).set("match_threshold", 0.35)
        assert Config(config_dir=tmp_path).get("match_threshold") == 0.35

    def test_environment_overrides(self, tmp_path, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql://env/recall")
        clean_env.setenv("OPENAI_API_KEY", "sk-test")
        clean_env.setenv("EMBEDDING_MODEL", "text-embedding-3-large")

        config = Config(config_dir=tmp_path)

        assert config.get_database_url() == "postgresql://env/recall"
        assert config.get_openai_api_key() == "sk-test"
        assert config.get("embedding_model") == "text-embedding-3-large"

    def test_missing_secrets_are_none(self, tmp_path, clean_env):
        config = Config(config_dir=tmp_path)
        assert config.get_database_url() is None
        assert config.get_openai_api_key() is None

    def test_unknown_key_default(self, tmp_path, clean_env):
        assert Config(config_dir=tmp_path).get("nope", "fallback") == "fallback"
