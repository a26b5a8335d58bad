from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    logs_dir: Path = Path("logs")
    log_to_console: bool = False

    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    request_timeout_seconds: float = 60.0

    # Full launch command for the tool server, e.g. "uv run server.py".
    # When unset the command is derived from the script extension.
    mcp_server_command: str | None = None
    tool_timeout_seconds: float = 60.0

    # "strict" forwards the model's tool arguments, "empty" always sends {}.
    tool_argument_mode: Literal["strict", "empty"] = "strict"
    render_all_payloads: bool = False
    image_max_width: int = 80

    exit_command: str = "quit"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="allow",
    )


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS
