from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ------------------------------------------------------------------
    # Team workspaces
    # ------------------------------------------------------------------
    # A team's files live under <workspace_root>/<workspace_prefix><team_id>
    workspace_root: Path = Path.home() / ".openclaw"
    workspace_prefix: str = "workspace-"

    # ------------------------------------------------------------------
    # Workflow defaults
    # ------------------------------------------------------------------
    default_timezone: str = "America/New_York"
    default_approval_provider: str = "telegram"

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False  # one JSON object per line instead of plain text

    # Console origins allowed to call the API from a browser
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Optional override for the approval target stamped on seeded templates
    default_approval_target: Optional[str] = None

    class Config:
        env_file = ".env"
        env_prefix = "FLOWDECK_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
