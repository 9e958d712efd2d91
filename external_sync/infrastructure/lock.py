"""
Single-flight lock over the Django cache.

``cache.add`` only stores a key that is absent, which makes it an atomic
test-and-set on shared backends such as Redis.
"""
import logging
import uuid
from typing import Optional

from django.core.cache import cache as default_cache

logger = logging.getLogger(__name__)

SYNC_LOCK_KEY = "external_sync:lock"


class CacheSyncLock:
    """Lock held for at most ``timeout`` seconds."""

    def __init__(self, key: str = SYNC_LOCK_KEY, timeout: int = 3600, cache=None):
        self.key = key
        self.timeout = timeout
        self.cache = cache or default_cache
        self._token: Optional[str] = None

    def acquire(self) -> bool:
        token = str(uuid.uuid4())
        if self.cache.add(self.key, token, timeout=self.timeout):
            self._token = token
            return True
        logger.info("Lock %s is held by another run", self.key)
        return False

    def release(self) -> None:
        """Release the lock if this instance still owns it."""
        if self._token is None:
            return
        if self.cache.get(self.key) == self._token:
            self.cache.delete(self.key)
        self._token = None

    @property
    def held(self) -> bool:
        return self._token is not None
