"""Tool configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """vendor-checksum settings.

    Every field can be set as ``VENDOR_CHECKSUM_<NAME>`` in the environment or in
    a ``.env`` file.  Command-line flags take precedence.
    """

    model_config = SettingsConfigDict(
        env_prefix="VENDOR_CHECKSUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Layout
    vendor_dir: Path = Path("vendor")
    checksum_file: str = Field(default=".cargo-checksum.json", min_length=1)
    descriptor_file: str = Field(default="Cargo.toml", min_length=1)

    # Behavior
    ignore_missing: bool = False
    refresh_package_hash: bool = True
    num_threads: int | None = Field(default=None, ge=1)

    # Logging
    log_level: LogLevel = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value
