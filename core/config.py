"""
Configuration management for the generation job service.

Centralizes all configuration including:
- Provider API keys and endpoints
- Per-provider polling cadence
- Input/artifact download settings
- Progress server settings

Environment variables are only read by the default factories below, i.e.
when Config.from_env() builds the process-wide instance. Adapters receive
explicit ProviderConfig objects, so tests can build differently configured
instances side by side without touching os.environ.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class PollingConfig:
    """Fixed-cadence polling policy for one provider."""
    delay_seconds: float = 5.0
    max_attempts: int = 60  # ceiling x delay ~ documented worst case
    # None keeps the "absorb transient errors until the ceiling" behavior
    max_consecutive_transient: Optional[int] = None

    @property
    def budget_seconds(self) -> float:
        return self.delay_seconds * self.max_attempts


def _polling_from_env(prefix: str, delay: float, attempts: int) -> PollingConfig:
    return PollingConfig(
        delay_seconds=_env_float(f"{prefix}_POLL_DELAY", delay),
        max_attempts=_env_int(f"{prefix}_POLL_MAX_ATTEMPTS", attempts),
    )


@dataclass
class ProviderConfig:
    """Credentials, endpoint and polling policy for one backend."""
    api_key: str = ""
    base_url: str = ""
    polling: PollingConfig = field(default_factory=PollingConfig)
    request_timeout: float = 60.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class APIConfig:
    """API configuration for generation backends."""

    # Alibaba DashScope (Wan 2.6): 60 x 5s ~ 5 minutes
    dashscope: ProviderConfig = field(default_factory=lambda: ProviderConfig(
        api_key=os.getenv("DASHSCOPE_API_KEY", ""),
        base_url=os.getenv("DASHSCOPE_API_BASE", "https://dashscope-intl.aliyuncs.com/api/v1"),
        polling=_polling_from_env("DASHSCOPE", 5.0, 60),
    ))

    # BytePlus ModelArk (Seedance)
    byteplus: ProviderConfig = field(default_factory=lambda: ProviderConfig(
        api_key=os.getenv("BYTEPLUS_API_KEY", ""),
        base_url=os.getenv("BYTEPLUS_API_BASE", "https://ark.ap-southeast.bytepluses.com/api/v3"),
        polling=_polling_from_env("BYTEPLUS", 5.0, 72),
    ))

    # Kie.ai market aggregator (Kling / Veo / Flux): Kling takes 2-5 min
    kie: ProviderConfig = field(default_factory=lambda: ProviderConfig(
        api_key=os.getenv("KIE_API_KEY", ""),
        base_url=os.getenv("KIE_API_BASE", "https://api.kie.ai/api/v1"),
        polling=_polling_from_env("KIE", 5.0, 180),
    ))

    # fal queue
    fal: ProviderConfig = field(default_factory=lambda: ProviderConfig(
        api_key=os.getenv("FAL_API_KEY", ""),
        base_url=os.getenv("FAL_QUEUE_BASE", "https://queue.fal.run"),
        polling=_polling_from_env("FAL", 5.0, 120),
    ))

    # LTX (synchronous API, long single request)
    ltx: ProviderConfig = field(default_factory=lambda: ProviderConfig(
        api_key=os.getenv("LTX_API_KEY", ""),
        base_url=os.getenv("LTX_API_BASE", "https://api.ltx.video/v1"),
        polling=PollingConfig(delay_seconds=0.0, max_attempts=1),
        request_timeout=600.0,
    ))


@dataclass
class DownloadConfig:
    """Settings for fetching input images and finished artifacts."""
    timeout_seconds: float = 120.0
    image_retry_attempts: int = 3
    image_retry_multiplier: float = 1.0
    max_image_bytes: int = 20 * 1024 * 1024


@dataclass
class ServerConfig:
    """Progress/HTTP server settings."""
    host: str = field(default_factory=lambda: os.getenv("SERVER_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("SERVER_PORT", 8765))
    heartbeat_interval: int = 30
    event_history_size: int = 200
    max_jobs: int = 100  # finished jobs kept in memory


@dataclass
class Config:
    """Main configuration class."""

    api: APIConfig = field(default_factory=APIConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls()

    def providers(self) -> dict[str, ProviderConfig]:
        """All provider configs by name."""
        return {
            "dashscope": self.api.dashscope,
            "byteplus": self.api.byteplus,
            "kie": self.api.kie,
            "fal": self.api.fal,
            "ltx": self.api.ltx,
        }

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not any(p.configured for p in self.providers().values()):
            issues.append("No provider API key configured")

        for name, provider in self.providers().items():
            if provider.polling.max_attempts < 1:
                issues.append(f"{name}: max_attempts must be at least 1")
            if provider.polling.delay_seconds < 0:
                issues.append(f"{name}: delay_seconds must not be negative")

        return issues


# Global config instance (read-only after initialization)
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
