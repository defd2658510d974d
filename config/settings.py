"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., WORKER_CONCURRENCY env var → Settings.WORKER_CONCURRENCY)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
Components that need different values in tests take them as constructor
arguments, with these settings as the defaults.
"""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "screenshots"
    POSTGRES_PASSWORD: str = "screenshots"
    POSTGRES_DB: str = "screenshots"

    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # ── Worker ──────────────────────────────────────────────────
    WORKER_CONCURRENCY: int = 3        # concurrent renders; each one owns a browser process
    WORKER_POLL_INTERVAL: int = 1      # whole seconds a worker idles on the wake list (BLPOP timeout)

    # ── Queue ───────────────────────────────────────────────────
    JOB_MAX_ATTEMPTS: int = 3
    JOB_BACKOFF_BASE_MS: int = 2000    # 2s, 4s, 8s between job-level retries
    JOB_DEFAULT_PRIORITY: int = 10     # lower number = dequeued first
    STALL_TIMEOUT_SECONDS: float = 120.0
    STALL_CHECK_INTERVAL: float = 30.0
    COMPLETED_RETENTION_SECONDS: float = 3600.0
    FAILED_RETENTION_SECONDS: float = 24 * 3600.0
    SWEEP_INTERVAL_SECONDS: float = 3600.0

    # ── Renderers ───────────────────────────────────────────────
    PRIMARY_MAX_ATTEMPTS: int = 3
    PRIMARY_RETRY_DELAY: float = 1.0
    FALLBACK_MAX_ATTEMPTS: int = 2
    FALLBACK_RETRY_DELAY: float = 2.0

    VIEWPORT_WIDTH: int = 1280
    VIEWPORT_HEIGHT: int = 1024
    DEVICE_SCALE_FACTOR: int = 1
    PRIMARY_SETTLE_DELAY: float = 3.0        # wait after network idle for late DOM changes
    PRIMARY_NAVIGATION_TIMEOUT: float = 45.0   # per capture step
    PRIMARY_ATTEMPT_TIMEOUT: float = 90.0      # whole attempt, launch to PNG
    CHROMIUM_EXECUTABLE_PATH: Optional[str] = None

    SCREENSHOT_API_URL: str = "https://api.screenshotone.com/take"
    SCREENSHOT_API_KEY: str = ""
    FALLBACK_RENDER_DELAY: int = 3           # seconds, matches PRIMARY_SETTLE_DELAY
    FALLBACK_TIMEOUT: float = 50.0

    # ── Object storage ──────────────────────────────────────────
    S3_BUCKET: str = "screenshots"
    AWS_REGION: str = "us-east-1"
    S3_PUBLIC_BASE_URL: Optional[str] = None  # e.g. a CDN in front of the bucket
    SCREENSHOT_KEY_PREFIX: str = "screenshots"

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def sync_database_url(self) -> str:
        """Connection string for the queue and entity tables (psycopg2 driver)."""
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @model_validator(mode="after")
    def _renders_fit_inside_stall_timeout(self) -> "Settings":
        # Workers heartbeat once per render attempt, so the longest gap between
        # heartbeats is one attempt plus the retry delay before the next.
        longest_gap = max(
            self.PRIMARY_ATTEMPT_TIMEOUT + self.PRIMARY_RETRY_DELAY,
            self.FALLBACK_TIMEOUT + self.FALLBACK_RETRY_DELAY,
        )
        if longest_gap >= self.STALL_TIMEOUT_SECONDS:
            raise ValueError(
                f"STALL_TIMEOUT_SECONDS ({self.STALL_TIMEOUT_SECONDS:g}s) must exceed the longest "
                f"render attempt plus retry delay ({longest_gap:g}s), or live renders are "
                "recovered as stalled"
            )
        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import this everywhere
settings = Settings()
