"""
Configuration settings for agent teams.
"""
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings, read from AGENT_TEAMS_* variables and .env."""

    # Coordination directory
    base_dir: str = ".agent-teams"

    # Loop timing (milliseconds)
    poll_interval_ms: int = Field(500, gt=0)
    heartbeat_interval_ms: int = Field(5000, ge=0)
    heartbeat_timeout_ms: int = Field(30000, gt=0)

    # File Locking (seconds)
    lock_timeout: float = Field(10.0, ge=0)
    lock_poll_interval: float = Field(0.05, gt=0)

    # Seconds to wait for a teammate to exit after SIGTERM
    stop_timeout: float = Field(5.0, ge=0)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    class Config:
        env_prefix = "AGENT_TEAMS_"
        env_file = ".env"
        env_file_encoding = "utf-8"
