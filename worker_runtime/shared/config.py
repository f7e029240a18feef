from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === Application ===
    APP_NAME: str = "Sticky Workflow Worker"
    APP_VERSION: str = "1.0.0"

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # === Redis ===
    redis_url: str = "redis://localhost:6379/0"

    # AWS ElastiCache component fields (override redis_url when set)
    REDIS_HOST: str | None = None
    REDIS_PORT: int = 6379

    # === Worker: polling ===
    TASK_LIST: str = "default"
    DECISION_POLLERS: int = 2
    POLL_BLOCK_MS: int = 2000

    # === Sticky execution cache ===
    # 0 disables sticky execution entirely
    STICKY_CACHE_SIZE: int = 10000

    # === Retry: poll failures (shared throttle) ===
    POLL_RETRY_INITIAL_INTERVAL_SECONDS: float = 0.2
    POLL_RETRY_MAX_INTERVAL_SECONDS: float = 10.0
    POLL_RETRY_BACKOFF_COEFFICIENT: float = 2.0

    # === Retry: service calls (completion reports, sticky resets) ===
    SERVICE_RETRY_INITIAL_INTERVAL_SECONDS: float = 0.1
    SERVICE_RETRY_MAX_INTERVAL_SECONDS: float = 10.0
    SERVICE_RETRY_BACKOFF_COEFFICIENT: float = 2.0
    SERVICE_RETRY_EXPIRATION_SECONDS: float = 60.0
    SERVICE_RETRY_JITTER: float = 0.2

    # === Redis Streams ===
    STREAM_DECISION_PREFIX: str = "decisions:"
    STREAM_DECISION_GROUP: str = "decision_workers"
    STREAM_COMPLETION_KEY: str = "workflow:decision_completions"
    STICKY_ROUTING_PREFIX: str = "sticky:"
    STREAM_MAX_LEN: int = 10000

    # === Metrics ===
    METRICS_ENABLED: bool = True
    METRICS_PORT: int = 9108

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def construct_urls_from_components(self) -> "Settings":
        """Construct redis_url from individual AWS components."""
        if self.REDIS_HOST:
            self.redis_url = f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"
        return self

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @field_validator("STICKY_CACHE_SIZE")
    @classmethod
    def validate_cache_size(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Sticky cache size must not be negative")
        return v

    @field_validator("DECISION_POLLERS", "POLL_BLOCK_MS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Poller settings must be positive")
        return v

    @field_validator("POLL_RETRY_BACKOFF_COEFFICIENT", "SERVICE_RETRY_BACKOFF_COEFFICIENT")
    @classmethod
    def validate_backoff_coefficient(cls, v: float) -> float:
        if v <= 1.0:
            raise ValueError("Backoff coefficient must be greater than 1.0")
        return v


try:
    settings = Settings()
except Exception as e:
    import sys

    print(f"CRITICAL: Configuration validation failed: {e}")
    sys.exit(1)
