"""Application configuration utilities."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./payroll.db", alias="DATABASE_URL"
    )
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    redis_enabled_flag: bool = Field(default=True, alias="REDIS_ENABLED")
    redis_ca_cert_path: str = Field(
        default="certs/redis_ca.pem", alias="REDIS_CA_CERT_PATH"
    )
    celery_broker_url: str | None = Field(
        default=None, alias="CELERY_BROKER_URL"
    )
    celery_result_backend: str | None = Field(
        default=None, alias="CELERY_RESULT_BACKEND"
    )
    payroll_timezone: str = Field(default="Africa/Cairo", alias="PAYROLL_TIMEZONE")
    payout_currency: str = Field(default="EGP", alias="PAYOUT_CURRENCY")
    refund_tolerance_cents: float = Field(
        default=1.5, alias="REFUND_TOLERANCE_CENTS"
    )
    generation_lock_ttl_seconds: int = Field(
        default=600, alias="GENERATION_LOCK_TTL_SECONDS"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def get(self, key: str, default: object | None = None) -> object | None:
        """Dictionary-style access to configuration values."""

        return self.model_dump(by_alias=True).get(key, default)

    @property
    def broker_url(self) -> str:
        """Return the Celery broker URL, defaulting to Redis."""

        return self.celery_broker_url or self.redis_url

    @property
    def result_backend(self) -> str:
        """Return the Celery result backend, defaulting to the Redis URL."""

        if self.celery_result_backend:
            return self.celery_result_backend
        return self.redis_url

    @property
    def redis_enabled(self) -> bool:
        """Return ``True`` when Redis integrations should be used."""

        return self.redis_enabled_flag


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
