"""
Settings Configuration
Pydantic-based configuration loading and validation
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Job execution client configuration"""
    base_url: str = Field(default="http://127.0.0.1:8188", description="Compute server base URL")
    client_id: Optional[str] = Field(default=None, description="Fixed client id (generated when empty)")
    request_timeout_s: float = Field(default=300.0, gt=0, description="Per-request timeout (seconds)")

    # submission retries
    max_retries: int = Field(default=3, ge=0, description="Additional attempts for submit/upload")
    retry_base_delay_s: float = Field(default=1.0, ge=0, description="First retry delay (seconds)")
    retry_max_delay_s: float = Field(default=5.0, ge=0, description="Retry delay cap (seconds)")

    # polling
    poll_interval_s: float = Field(default=1.0, ge=0, description="Healthy poll interval (seconds)")
    poll_max_delay_s: float = Field(default=10.0, ge=0, description="Polling backoff cap (seconds)")
    max_wait_s: float = Field(default=300.0, gt=0, description="Maximum wait for job completion (seconds)")
    max_consecutive_errors: int = Field(default=3, ge=1, description="Consecutive polling error budget")
    max_total_errors: int = Field(default=10, ge=1, description="Total polling error budget")

    # payload limits
    max_image_size_mb: float = Field(default=50, gt=0, description="Per-file image limit (MB)")
    max_video_size_mb: float = Field(default=100, gt=0, description="Per-file video limit (MB)")
    url_download_timeout_s: float = Field(default=60.0, gt=0, description="Timeout for URL asset downloads")

    # artifact downloads
    download_batch_size: int = Field(default=3, ge=1, description="Concurrent artifact downloads per batch")
    max_total_memory_mb: float = Field(default=500, gt=0, description="Global artifact memory ceiling (MB)")
    memory_warning_ratio: float = Field(default=0.8, gt=0, le=1, description="Warn at this share of the ceiling")

    class Config:
        env_prefix = "COMFYUI_"

    @model_validator(mode="after")
    def _check_budgets(self) -> "ClientSettings":
        if self.max_total_errors < self.max_consecutive_errors:
            raise ValueError("max_total_errors must be >= max_consecutive_errors")
        if self.retry_max_delay_s < self.retry_base_delay_s:
            raise ValueError("retry_max_delay_s must be >= retry_base_delay_s")
        if self.poll_max_delay_s < self.poll_interval_s:
            raise ValueError("poll_max_delay_s must be >= poll_interval_s")
        return self

    @property
    def max_image_size_bytes(self) -> int:
        return int(self.max_image_size_mb * 1024 * 1024)

    @property
    def max_video_size_bytes(self) -> int:
        return int(self.max_video_size_mb * 1024 * 1024)

    @property
    def max_total_memory_bytes(self) -> int:
        return int(self.max_total_memory_mb * 1024 * 1024)


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO", description="Log level name")
    file: Optional[str] = Field(default=None, description="Log file name under logs/")
    use_rich: bool = Field(default=True, description="Render console logs through Rich")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Aggregated settings"""

    client: ClientSettings = Field(default_factory=ClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after applying a .env file"""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            client=ClientSettings(),
            logging=LoggingSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Global settings singleton"""
    return Settings.load_from_env_file()


def get_client_settings() -> ClientSettings:
    return get_settings().client


def get_logging_settings() -> LoggingSettings:
    return get_settings().logging
