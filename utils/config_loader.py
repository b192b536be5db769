"""Configuration loader that reads from .env and validates with Pydantic."""

import os
import sys
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import ValidationError

from models.config_models import Config, CredentialsConfig

ENV_PATH = Path(__file__).parent.parent / ".env"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read an environment variable, treating empty values as unset."""
    return os.getenv(name) or default


def load_config(env_path: Path = ENV_PATH) -> Config:
    """
    Load and validate configuration from the environment.

    Values from a .env file fill in variables the environment does not
    already define, so CI-provided values (GITHUB_TOKEN, GITHUB_OUTPUT, ...)
    always win.

    Returns:
        Config: Validated configuration object

    Raises:
        SystemExit: If configuration is invalid or missing required fields
    """
    load_dotenv(dotenv_path=env_path)

    try:
        return Config(
            credentials=CredentialsConfig(
                github_token=_env("GITHUB_TOKEN", ""),
                anthropic_api_key=_env("ANTHROPIC_API_KEY"),
                openai_api_key=_env("OPENAI_API_KEY"),
                llm_provider=_env("LLM_PROVIDER", "openai"),
                llm_model=_env("LLM_MODEL", "gpt-4o-mini"),
            ),
            log_level=_env("LOG_LEVEL", "INFO"),
            step_summary_path=_env("GITHUB_STEP_SUMMARY"),
            step_output_path=_env("GITHUB_OUTPUT"),
        )
    except ValidationError as e:
        _report_invalid_config(e)
        sys.exit(1)


def _report_invalid_config(error: ValidationError) -> None:
    """Print each invalid field to stderr; logging is not configured yet."""
    print("❌ Configuration validation failed:", file=sys.stderr)
    print("\nCheck your environment or .env file. Missing or invalid fields:", file=sys.stderr)

    for field_error in error.errors():
        field_path = " → ".join(str(x) for x in field_error["loc"])
        print(f"  • {field_path}: {field_error['msg']}", file=sys.stderr)

    print("\nHint: GITHUB_TOKEN is required for every command except verify-data.", file=sys.stderr)
