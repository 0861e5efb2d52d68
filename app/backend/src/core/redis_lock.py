"""Redis-backed lock guarding against overlapping payroll runs."""

from __future__ import annotations

import structlog
from redis import Redis
from redis.exceptions import LockError

from .config import get_settings

LOGGER = structlog.get_logger(__name__)


class GenerationLock:
    """Non-blocking Redis lock for one generation period."""

    def __init__(self, name: str, *, key_prefix: str = "payroll_lock", client: Redis | None = None):
        settings = get_settings()
        self.client = client or Redis.from_url(settings.redis_url)
        self.key = f"{key_prefix}:{name}"
        self._lock = self.client.lock(
            self.key, timeout=settings.generation_lock_ttl_seconds, blocking=False
        )

    def acquire(self) -> bool:
        acquired = bool(self._lock.acquire(blocking=False))
        LOGGER.info("payroll_lock_acquire", key=self.key, acquired=acquired)
        return acquired

    def release(self) -> None:
        try:
            self._lock.release()
        except LockError as exc:
            # Expired before release; another run may now hold the key.
            LOGGER.warning("payroll_lock_release_failed", key=self.key, error=str(exc))


__all__ = ["GenerationLock"]
