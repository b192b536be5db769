"""Tests for configuration loading and validation."""

import pytest
from pydantic import ValidationError

from models.config_models import (
    DEFAULT_RETRIES,
    Config,
    CredentialsConfig,
    DownloadSettings,
    EvaluationSettings,
    PredictionSettings,
)
from utils.config_loader import load_config


class TestCredentialsConfig:
    """Test CredentialsConfig validation."""

    def test_valid_credentials(self):
        """Test that valid credentials pass validation."""
        creds = CredentialsConfig(github_token="ghp_valid_token", openai_api_key="sk-test")
        assert creds.github_token == "ghp_valid_token"
        assert creds.llm_provider == "openai"
        assert creds.llm_api_key == "sk-test"

    def test_rejects_placeholder_github_token(self):
        """Test that placeholder GitHub token is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            CredentialsConfig(github_token="ghp_your_token_here")
        assert "GitHub token must be set" in str(exc_info.value)

    def test_empty_token_rejected(self):
        with pytest.raises(ValidationError):
            CredentialsConfig(github_token="")

    def test_provider_is_normalized(self):
        creds = CredentialsConfig(github_token="t", llm_provider="Anthropic", anthropic_api_key="key")
        assert creds.llm_provider == "anthropic"
        assert creds.llm_api_key == "key"

    def test_invalid_provider(self):
        with pytest.raises(ValidationError, match="LLM provider"):
            CredentialsConfig(github_token="t", llm_provider="cohere")


class TestConfig:
    """Test Config validation."""

    def test_log_level_uppercased(self):
        config = Config(credentials=CredentialsConfig(github_token="t"), log_level="debug")
        assert config.log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError, match="Log level must be one of"):
            Config(credentials=CredentialsConfig(github_token="t"), log_level="LOUD")


class TestCommandSettings:
    """Test per-command settings."""

    def test_prediction_defaults(self):
        settings = PredictionSettings(org="o", repo="r", label_prefix="area-")

        assert settings.threshold == 0.4
        assert settings.retries == DEFAULT_RETRIES
        assert settings.test is False
        assert settings.label_predicate("Area-X")

    @pytest.mark.parametrize("threshold", [0.0, 1.5, -1])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ValidationError):
            PredictionSettings(org="o", repo="r", label_prefix="area-", threshold=threshold)

    def test_threshold_of_one_allowed(self):
        assert EvaluationSettings(label_prefix="area-", threshold=1.0).threshold == 1.0

    def test_label_prefix_must_end_in_non_alphanumeric(self):
        with pytest.raises(ValidationError, match="non-alphanumeric"):
            PredictionSettings(org="o", repo="r", label_prefix="area")

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            DownloadSettings(org="o", repos=["r"], label_prefix="area-", retries=(30, -1))

    def test_download_requires_repos(self):
        with pytest.raises(ValidationError):
            DownloadSettings(org="o", repos=[], label_prefix="area-")

    def test_page_size_capped(self):
        with pytest.raises(ValidationError):
            DownloadSettings(org="o", repos=["r"], label_prefix="area-", page_size=101)

    def test_excluded_authors_case_insensitive(self):
        settings = DownloadSettings(org="o", repos=["r"], label_prefix="area-", excluded_authors=["Bot"])
        assert settings.is_excluded_author("bot")
        assert not settings.is_excluded_author(None)


class TestLoadConfig:
    """Test load_config function."""

    def test_load_config_with_valid_env(self, test_env):
        """Test loading config with valid environment variables."""
        config = load_config()

        assert config.credentials.github_token == test_env["github_token"]
        assert config.credentials.openai_api_key == test_env["openai_api_key"]
        assert config.log_level == "DEBUG"
        assert config.step_summary_path is None

    def test_load_config_reads_ci_paths(self, test_env, monkeypatch):
        monkeypatch.setenv("GITHUB_STEP_SUMMARY", "/tmp/summary.md")
        monkeypatch.setenv("GITHUB_OUTPUT", "/tmp/output")

        config = load_config()

        assert config.step_summary_path == "/tmp/summary.md"
        assert config.step_output_path == "/tmp/output"

    def test_load_config_with_invalid_env(self, invalid_env, capsys):
        """Test that invalid config causes exit."""
        with pytest.raises(SystemExit) as exc_info:
            load_config()

        assert exc_info.value.code == 1
        assert "Configuration validation failed" in capsys.readouterr().err
