"""Tests for configuration management."""

import json
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from inboxrules.config import AIConfig, Config, MatchingConfig, validate_api_base
from inboxrules.errors import ConfigError, ErrorCode

KEY_VARS = ("INBOXRULES_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY")


@pytest.fixture
def temp_config_dir(monkeypatch):
    """Create a temporary config directory for testing."""
    for var in KEY_VARS:
        monkeypatch.delenv(var, raising=False)
    with tempfile.TemporaryDirectory() as tmpdir:
        config_dir = Path(tmpdir) / ".inboxrules"
        with patch("inboxrules.config.get_config_dir", return_value=config_dir):
            with patch("inboxrules.config.get_config_path", return_value=config_dir / "config.json"):
                config_dir.mkdir(parents=True, exist_ok=True)
                yield config_dir


class TestConfigBasics:
    """Tests for basic config functionality."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config()

        assert config.ai.enabled is True
        assert config.ai.provider == "anthropic"
        assert config.ai.model is None
        assert config.matching.default_user is None
        assert config.matching.run_ai is True

    def test_invalid_api_base_dropped(self):
        ai = AIConfig(api_base="http://example.com/v1")
        assert ai.api_base is None

    def test_invalid_timeout_reset(self):
        ai = AIConfig(timeout=0)
        assert ai.timeout == 60.0


class TestValidateApiBase:
    """Tests for validate_api_base."""

    def test_https_allowed(self):
        assert validate_api_base(" https://proxy.example.com/v1 ") == "https://proxy.example.com/v1"

    def test_http_localhost_allowed(self):
        assert validate_api_base("http://localhost:11434") == "http://localhost:11434"

    def test_empty_is_none(self):
        assert validate_api_base("  ") is None

    @pytest.mark.parametrize(
        "url",
        ["proxy.example.com", "ftp://proxy.example.com", "http://proxy.example.com", "https://"],
    )
    def test_rejected(self, url):
        with pytest.raises(ValueError):
            validate_api_base(url)


class TestConfigSaveLoad:
    """Tests for config persistence."""

    def test_save_and_load(self, temp_config_dir):
        """Test saving and loading configuration."""
        config = Config()
        config.ai.provider = "openai"
        config.ai.api_key = "test-api-key"
        config.matching.default_user = "me@example.com"
        config.matching.run_ai = False
        config.save()

        loaded = Config.load()

        assert loaded.ai.provider == "openai"
        assert loaded.ai.api_key == "test-api-key"
        assert loaded.matching == MatchingConfig(default_user="me@example.com", run_ai=False)

    def test_save_sets_permissions(self, temp_config_dir):
        """Test that save sets secure file permissions."""
        Config().save()

        file_stat = (temp_config_dir / "config.json").stat()
        assert file_stat.st_mode & 0o777 == stat.S_IRUSR | stat.S_IWUSR

    def test_load_nonexistent(self, temp_config_dir):
        config = Config.load()
        assert config.matching.default_user is None

    def test_unknown_keys_fall_back_to_defaults(self, temp_config_dir):
        (temp_config_dir / "config.json").write_text(
            json.dumps({"ai": {"confidence_threshold": 0.8}, "matching": {"run_ai": False}})
        )
        config = Config.load()
        assert config.ai == AIConfig()
        assert config.matching.run_ai is False

    def test_corrupt_file_raises(self, temp_config_dir):
        (temp_config_dir / "config.json").write_text("{not json")
        with pytest.raises(ConfigError) as exc_info:
            Config.load()
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID


class TestEnvironmentOverrides:
    """Tests for API keys read from the environment."""

    def test_anthropic_key(self, temp_config_dir, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        assert Config.load().ai.api_key == "sk-ant"

    def test_inboxrules_key_wins(self, temp_config_dir, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        monkeypatch.setenv("INBOXRULES_API_KEY", "generic")
        assert Config.load().ai.api_key == "generic"

    def test_gemini_key(self, temp_config_dir, monkeypatch):
        config = Config()
        config.ai.provider = "gemini"
        config.save()
        monkeypatch.setenv("GEMINI_API_KEY", "gem")
        assert Config.load().ai.api_key == "gem"


class TestIsAIConfigured:
    """Tests for Config.is_ai_configured."""

    def test_needs_key(self):
        config = Config()
        assert not config.is_ai_configured()
        config.ai.api_key = "key"
        assert config.is_ai_configured()

    def test_ollama_needs_no_key(self):
        config = Config()
        config.ai.provider = "ollama"
        assert config.is_ai_configured()

    def test_disabled(self):
        config = Config()
        config.ai.api_key = "key"
        config.ai.enabled = False
        assert not config.is_ai_configured()

    def test_provider_none(self):
        config = Config()
        config.ai.api_key = "key"
        config.ai.provider = "none"
        assert not config.is_ai_configured()
