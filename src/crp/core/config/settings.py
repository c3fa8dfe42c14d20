"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cardiac recovery server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: there is no auth layer in front of the tools.
    crp_host: str = "127.0.0.1"
    crp_port: int = 8001
    crp_log_level: str = "info"
    # Binding to a non-loopback host is refused unless this is set true.
    crp_allow_insecure_bind: bool = False

    # Storage (recovery log)
    db_path: str = "~/.crp/recovery.db"

    # Fernet key(s), comma separated with the active key first.
    # Empty disables persistence and the storage-backed tools.
    encryption_key: str = ""

    # Patient defaults (the stored profile takes precedence)
    surgery_date: str = ""

    # Heart-rate stream
    hr_window_size: int = 120
    hr_queue_size: int = 256


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
