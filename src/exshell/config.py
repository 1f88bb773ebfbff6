"""Settings for the interpreter, read from EXSHELL_* variables or a .env file."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Interpreter settings."""

    model_config = SettingsConfigDict(
        env_prefix="EXSHELL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # History
    history_file: Path = Field(
        default_factory=lambda: Path.home() / ".exshell_history",
        description="File the readline history is persisted to",
    )
    history_len: int = Field(default=1000, ge=0, description="Entries kept per history category")

    # Startup
    rc_file: Path = Field(
        default_factory=lambda: Path.home() / ".exshellrc",
        description="Script sourced before the first prompt",
    )
    prompt: str = Field(default=":", description="Prompt suffix shown after the current directory")

    # Command behaviour
    swap_backwards_range: bool = Field(
        default=True, description="Silently swap ranges given as 5,2 instead of rejecting them"
    )

    # Logging
    log_level: str = Field(default="WARNING", description="Log level")


def get_settings(**overrides) -> Settings:
    """Build settings, letting keyword overrides win over the environment."""
    return Settings(**overrides)
