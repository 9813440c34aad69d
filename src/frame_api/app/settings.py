"""Application settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

SUPPORTED_ASPECT_RATIOS = (1.91, 1.0)


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "lilypad-frame"
    base_url: str = "http://localhost:8000"
    public_dir: Path = Path("public")
    output_dir: Path = Path("public/results")
    lilypad_binary: str = "lilypad"
    module_version: str = "cowsay:v0.0.4"
    # Name of the env var holding the signing key; the value is read at run time.
    secret_env_var: str = "WEB3_PRIVATE_KEY"
    downloads_dir: str = "/tmp/lilypad/data/downloaded-files"
    command_timeout_s: float | None = Field(default=None, gt=0)
    strict_stderr: bool = True
    aspect_ratio: float = 1.91
    max_workers: int = Field(default=8, ge=1)
    tracker_max_entries: int | None = Field(default=None, ge=1)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FRAME_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    @field_validator("aspect_ratio")
    @classmethod
    def _check_aspect_ratio(cls, value: float) -> float:
        if value not in SUPPORTED_ASPECT_RATIOS:
            raise ValueError(f"aspect_ratio must be one of {SUPPORTED_ASPECT_RATIOS}")
        return value

    def resolved_base_url(self) -> str:
        return self.base_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
