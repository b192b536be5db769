"""Configuration models for validation using Pydantic."""

from typing import Callable, Optional
from pydantic import BaseModel, Field, field_validator

from utils.arg_parsing import make_label_predicate, parse_label_prefix

DEFAULT_RETRIES = (30, 30, 300, 300, 3000, 3000)
DEFAULT_THRESHOLD = 0.4


class CredentialsConfig(BaseModel):
    """API credentials loaded from environment variables."""

    github_token: str = Field(..., min_length=1, description="GitHub token used for API calls")

    # LLM configuration (classifier backend)
    anthropic_api_key: Optional[str] = Field(None, description="Anthropic API key for Claude")
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    llm_provider: str = Field(default="openai", description="LLM provider: 'anthropic' or 'openai'")
    llm_model: str = Field(default="gpt-4o-mini", description="LLM model name")

    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: str) -> str:
        """Validate GitHub token is set."""
        if not v or v == "ghp_your_token_here":
            raise ValueError("GitHub token must be set in .env file or GITHUB_TOKEN")
        return v

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ("anthropic", "openai"):
            raise ValueError("LLM provider must be 'anthropic' or 'openai'")
        return v_lower

    @property
    def llm_api_key(self) -> Optional[str]:
        """API key for the configured LLM provider."""
        if self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return self.openai_api_key


class Config(BaseModel):
    """Application configuration."""

    credentials: CredentialsConfig
    log_level: str = Field(default="INFO", description="Logging level")
    step_summary_path: Optional[str] = Field(None, description="CI step summary file (GITHUB_STEP_SUMMARY)")
    step_output_path: Optional[str] = Field(None, description="CI step output file (GITHUB_OUTPUT)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper


class LabelSettings(BaseModel):
    """Settings shared by every command that works with labels."""

    label_prefix: str
    excluded_authors: list[str] = Field(default_factory=list)
    retries: tuple[int, ...] = DEFAULT_RETRIES

    @field_validator("label_prefix")
    @classmethod
    def validate_label_prefix(cls, v: str) -> str:
        return parse_label_prefix(v)

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if any(delay < 0 for delay in v):
            raise ValueError("Retry delays must be non-negative")
        return v

    @property
    def label_predicate(self) -> Callable[[str], bool]:
        return make_label_predicate(self.label_prefix)

    def is_excluded_author(self, author: Optional[str]) -> bool:
        """Case-insensitive membership test against the excluded authors."""
        if author is None:
            return False
        return author.lower() in {a.lower() for a in self.excluded_authors}


class DownloadSettings(LabelSettings):
    """Settings for downloading training data."""

    org: str
    repos: list[str] = Field(..., min_length=1)
    issues_data_path: Optional[str] = None
    pulls_data_path: Optional[str] = None
    issues_limit: Optional[int] = Field(None, gt=0)
    pulls_limit: Optional[int] = Field(None, gt=0)
    page_size: Optional[int] = Field(None, gt=0, le=100)
    page_limit: Optional[int] = Field(None, gt=0)


class PredictionSettings(LabelSettings):
    """Settings for predicting and applying labels."""

    org: str
    repo: str
    issues: list[int] = Field(default_factory=list)
    pulls: list[int] = Field(default_factory=list)
    threshold: float = DEFAULT_THRESHOLD
    default_label: Optional[str] = None
    test: bool = False

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("Threshold must be in the range (0, 1]")
        return v


class EvaluationSettings(LabelSettings):
    """Settings for testing a classifier against known labels."""

    org: Optional[str] = None
    repos: list[str] = Field(default_factory=list)
    issues_data_path: Optional[str] = None
    pulls_data_path: Optional[str] = None
    issues_limit: Optional[int] = Field(None, gt=0)
    pulls_limit: Optional[int] = Field(None, gt=0)
    threshold: float = DEFAULT_THRESHOLD

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("Threshold must be in the range (0, 1]")
        return v
