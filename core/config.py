"""
Configuration management for the video job orchestrator.

Centralizes all configuration including:
- Provider API keys and endpoints
- Database and blob storage endpoints
- Polling and scheduling intervals
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class APIConfig:
    """API configuration for video generation providers."""

    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_api_base: str = field(
        default_factory=lambda: os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
    )

    wavespeed_api_key: str = field(default_factory=lambda: os.getenv("WAVESPEED_API_KEY", ""))
    wavespeed_api_base: str = field(
        default_factory=lambda: os.getenv("WAVESPEED_API_BASE", "https://api.wavespeed.ai/api/v3")
    )

    # Ordered JSON list of credential records (see services.video_generation.credentials)
    credentials_file: str = field(default_factory=lambda: os.getenv("VIDEO_CREDENTIALS_FILE", ""))

    request_timeout: float = field(default_factory=lambda: _env_float("VIDEO_HTTP_TIMEOUT", 60.0))
    download_timeout: float = field(default_factory=lambda: _env_float("VIDEO_DOWNLOAD_TIMEOUT", 600.0))


@dataclass
class DatabaseConfig:
    """Database configuration."""
    url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", ""))
    pool_min_size: int = field(default_factory=lambda: _env_int("DATABASE_POOL_MIN", 2))
    pool_max_size: int = field(default_factory=lambda: _env_int("DATABASE_POOL_MAX", 10))


@dataclass
class StorageConfig:
    """Storage configuration for finished videos."""
    r2_account_id: str = field(default_factory=lambda: os.getenv("R2_ACCOUNT_ID", ""))
    r2_access_key: str = field(default_factory=lambda: os.getenv("R2_ACCESS_KEY", ""))
    r2_secret_key: str = field(default_factory=lambda: os.getenv("R2_SECRET_KEY", ""))
    r2_bucket: str = field(default_factory=lambda: os.getenv("R2_BUCKET", "video-generations"))
    r2_endpoint_url: str = field(default_factory=lambda: os.getenv("R2_ENDPOINT_URL", ""))

    # Used when R2 is not configured
    local_dir: str = field(default_factory=lambda: os.getenv("VIDEO_STORAGE_DIR", "output/videos"))

    # Route under which cached blobs are served back to clients
    serve_prefix: str = "/api/video/file"

    @property
    def r2_enabled(self) -> bool:
        return bool(self.r2_access_key and self.r2_secret_key and (self.r2_account_id or self.r2_endpoint_url))

    @property
    def endpoint_url(self) -> str:
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"


@dataclass
class PollingConfig:
    """Streaming poller settings."""
    interval_seconds: float = field(default_factory=lambda: _env_float("VIDEO_POLL_INTERVAL", 5.0))
    max_consecutive_errors: int = field(default_factory=lambda: _env_int("VIDEO_POLL_MAX_ERRORS", 5))
    # Polls per connection before the stream closes (10 minutes at the default interval)
    max_attempts: int = field(default_factory=lambda: _env_int("VIDEO_POLL_MAX_ATTEMPTS", 120))


@dataclass
class SchedulerConfig:
    """Recurring schedule evaluation settings."""
    tick_interval_seconds: float = field(default_factory=lambda: _env_float("VIDEO_SCHEDULER_INTERVAL", 60.0))
    default_provider: str = "openai"
    default_model: str = "sora"
    default_frequency: str = "daily"

    # Shared secret for the run-due endpoint; open when empty
    trigger_token: str = field(default_factory=lambda: os.getenv("VIDEO_SCHEDULER_TOKEN", ""))


@dataclass
class ServerConfig:
    """HTTP server settings."""
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 8765))


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    max_prompt_length: int = 4000

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    @property
    def use_database(self) -> bool:
        return bool(self.database.url)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.api.credentials_file and not (self.api.openai_api_key or self.api.wavespeed_api_key):
            issues.append("No video provider credentials configured (VIDEO_CREDENTIALS_FILE, OPENAI_API_KEY or WAVESPEED_API_KEY)")

        if self.api.credentials_file and not os.path.exists(self.api.credentials_file):
            issues.append(f"VIDEO_CREDENTIALS_FILE does not exist: {self.api.credentials_file}")

        if not self.database.url:
            issues.append("DATABASE_URL not configured (jobs and schedules are kept in memory)")

        if not self.storage.r2_enabled:
            issues.append(f"R2 storage not configured (videos cached under {self.storage.local_dir})")

        if self.polling.max_consecutive_errors < 1:
            issues.append("VIDEO_POLL_MAX_ERRORS must be at least 1")

        if self.polling.max_attempts < 1:
            issues.append("VIDEO_POLL_MAX_ATTEMPTS must be at least 1")

        return issues


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config():
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
