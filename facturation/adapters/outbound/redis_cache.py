"""Dashboard cache: Redis when configured, otherwise nothing is kept.

Values are stored as JSON under the ``facturation:`` namespace. A Redis
outage never breaks a request: reads miss and writes are dropped.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable

import redis

from domain.ports import CachePort

logger = logging.getLogger(__name__)

NAMESPACE = "facturation:"


class RedisCacheAdapter(CachePort):
    """JSON values in Redis; a ``None`` client turns every call into a no-op."""

    PREFIX = NAMESPACE

    def __init__(self, redis_client=None):
        self._client = redis_client

    @property
    def actif(self) -> bool:
        return self._client is not None

    def get(self, key: str) -> object | None:
        if not self.actif:
            return None
        try:
            brut = self._client.get(self.PREFIX + key)
        except redis.RedisError as exc:
            logger.warning("Lecture cache %s impossible: %s", key, exc)
            return None
        return None if brut is None else json.loads(brut)

    def set(self, key: str, value: object, ttl: int = 3600) -> None:
        if not self.actif:
            return
        payload = json.dumps(value, default=str)
        try:
            self._client.setex(self.PREFIX + key, ttl, payload)
        except redis.RedisError as exc:
            logger.warning("Écriture cache %s impossible: %s", key, exc)

    def invalidate(self, prefix: str) -> None:
        if not self.actif:
            return
        motif = f"{self.PREFIX}{prefix}*"
        try:
            for cle in self._client.scan_iter(motif):
                self._client.delete(cle)
        except redis.RedisError as exc:
            logger.warning("Invalidation cache %s impossible: %s", prefix, exc)


class InMemoryCacheAdapter(CachePort):
    """Process-local cache, used by tests and single-worker runs."""

    def __init__(self, horloge: Callable[[], float] = time.monotonic):
        self._store: dict[str, tuple[object, float]] = {}
        self._horloge = horloge

    def get(self, key: str) -> object | None:
        entree = self._store.get(key)
        if entree is None:
            return None
        valeur, expire_a = entree
        if self._horloge() >= expire_a:
            del self._store[key]
            return None
        return valeur

    def set(self, key: str, value: object, ttl: int = 3600) -> None:
        self._store[key] = (value, self._horloge() + ttl)

    def invalidate(self, prefix: str) -> None:
        self._store = {k: v for k, v in self._store.items() if not k.startswith(prefix)}


def get_or_compute(cache: CachePort, key: str, compute_fn: Callable[[], object], ttl: int = 300):
    """Return the cached value for *key*, computing and storing it on a miss.

    ``None`` results are not cached.
    """
    valeur = cache.get(key)
    if valeur is None:
        valeur = compute_fn()
        if valeur is not None:
            cache.set(key, valeur, ttl)
    return valeur


def build_cache(redis_url: str | None) -> CachePort:
    if not redis_url:
        logger.info("Aucun REDIS_URL, cache désactivé")
        return RedisCacheAdapter(None)
    client = redis.from_url(redis_url)
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis indisponible (%s), cache désactivé", exc)
        return RedisCacheAdapter(None)
    return RedisCacheAdapter(client)
