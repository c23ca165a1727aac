"""Key-value store for job records, operation locks and download tokens.

Redis is used when REDIS_URL is set and reachable. Otherwise everything lives in
process memory and is lost on restart; that is fine for a single dev worker but
not for a deployment with several processes.
"""
import threading
import time
from typing import Dict, List, Optional, Tuple

import redis

from core.config import logger


class MemoryStore:
    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _alive(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    @staticmethod
    def _expiry(ttl: Optional[int]) -> Optional[float]:
        return time.monotonic() + ttl if ttl else None

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._alive(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            self._data[key] = (value, self._expiry(ttl))

    def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        with self._lock:
            if self._alive(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str) -> List[str]:
        with self._lock:
            return [k for k in list(self._data) if k.startswith(prefix) and self._alive(k) is not None]


class RedisStore:
    def __init__(self, client: "redis.Redis"):
        self._r = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=2))

    def ping(self) -> bool:
        return bool(self._r.ping())

    def get(self, key: str) -> Optional[str]:
        return self._r.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._r.set(key, value, ex=ttl or None)

    def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        return bool(self._r.set(key, value, ex=ttl or None, nx=True))

    def delete(self, key: str) -> None:
        self._r.delete(key)

    def keys(self, prefix: str) -> List[str]:
        return list(self._r.scan_iter(match=f"{prefix}*"))


def make_store(redis_url: str = ""):
    """RedisStore when redis_url answers a ping, MemoryStore otherwise."""
    url = (redis_url or "").strip()
    if not url:
        logger.warning("[store] REDIS_URL not set - job and lock state is in-memory and will not survive a restart")
        return MemoryStore()
    try:
        store = RedisStore.from_url(url)
        store.ping()
        logger.info("[store] Using Redis for job and lock state")
        return store
    except redis.RedisError as ex:
        logger.warning(f"[store] Redis unavailable, using in-memory storage: {ex}")
        return MemoryStore()
