"""Sync engine configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """modsync settings."""

    model_config = SettingsConfigDict(
        env_prefix="MODSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Paths
    cache_dir: Path = Path("./modio-cache")

    # Remote catalog
    api_url: str = "https://api.mod.io/v1"
    api_key: str = ""
    game_id: int = 0
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    page_limit: int = Field(default=100, ge=1, le=100)

    # Polling
    poll_interval_seconds: int = Field(default=15, ge=1)
    poll_tick_seconds: float = Field(default=1.0, gt=0)

    @property
    def manifest_path(self) -> Path:
        return self.cache_dir / "manifest.data"

    @property
    def user_data_path(self) -> Path:
        return self.cache_dir / "user.data"

    @property
    def mods_dir(self) -> Path:
        return self.cache_dir / "mods"

    def validate_runtime(self) -> None:
        """Validate settings required to talk to the remote catalog."""
        violations: list[str] = []
        if not self.api_key:
            violations.append("MODSYNC_API_KEY must be set")
        if self.game_id <= 0:
            violations.append("MODSYNC_GAME_ID must be a positive integer")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Incomplete configuration: {joined}")
