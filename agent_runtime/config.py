"""
Runtime configuration.

Values come from the environment (a local .env file is loaded on import) and
serve as defaults for ``QueryOptions``:

- AGENT_RUNTIME_PROVIDER: provider name (default: openai)
- AGENT_RUNTIME_MODEL: model id
- AGENT_RUNTIME_MAX_TURNS: turn ceiling per run (default: 10)
- AGENT_RUNTIME_MAX_BUDGET_USD: cost ceiling per run, 0 disables (default: 5)
- AGENT_RUNTIME_HOME: base directory for sessions and user settings
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from agent_runtime.errors import ConfigurationError

load_dotenv()


DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_MAX_TURNS = 10
DEFAULT_MAX_BUDGET_USD = 5.0
DEFAULT_HOME_DIRNAME = ".agent-runtime"


class RuntimeSettings(BaseModel):
    """Environment-backed defaults shared by every run."""

    provider: str = Field(DEFAULT_PROVIDER, description="Default provider name")
    model: str = Field(DEFAULT_MODEL, description="Default model id")
    max_turns: int = Field(DEFAULT_MAX_TURNS, ge=1, description="Turn ceiling")
    max_budget_usd: float = Field(
        DEFAULT_MAX_BUDGET_USD, description="Cost ceiling in USD, <= 0 disables it"
    )
    home_dir: Path = Field(
        default_factory=lambda: Path.home() / DEFAULT_HOME_DIRNAME,
        description="Base directory for sessions and user-level settings",
    )

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        raw: dict[str, str] = {}
        for field_name, env_name in (
            ("provider", "AGENT_RUNTIME_PROVIDER"),
            ("model", "AGENT_RUNTIME_MODEL"),
            ("max_turns", "AGENT_RUNTIME_MAX_TURNS"),
            ("max_budget_usd", "AGENT_RUNTIME_MAX_BUDGET_USD"),
            ("home_dir", "AGENT_RUNTIME_HOME"),
        ):
            value = os.getenv(env_name)
            if value:
                raw[field_name] = value

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid runtime settings: {e}") from e

    @property
    def sessions_dir(self) -> Path:
        return self.home_dir / "sessions"


def get_settings() -> RuntimeSettings:
    """Read settings from the current environment."""
    return RuntimeSettings.from_env()
