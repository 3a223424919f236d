"""
Candados single-flight para el barrido automático de estados

El barrido puede dispararse por Celery beat y por el endpoint
POST /invoices/status/update-all; dos pasadas simultáneas no deben solaparse.
"""
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Optional
import logging

import redis
from redis.exceptions import LockError

from app.core.config import settings

logger = logging.getLogger(__name__)

SWEEP_LOCK_NAME = "invoices:status-sweep"


class LocalSweepGuard:
    """Candado en proceso (un solo worker o pruebas)"""

    def __init__(self):
        self._lock = Lock()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()


class RedisSweepGuard:
    """Candado distribuido en Redis, compartido entre API y workers de Celery"""

    def __init__(self, client: redis.Redis, name: str = SWEEP_LOCK_NAME, timeout: Optional[int] = None):
        self.client = client
        self.name = name
        self.timeout = timeout or settings.STATUS_SWEEP_LOCK_TIMEOUT

    @contextmanager
    def hold(self) -> Iterator[bool]:
        lock = self.client.lock(self.name, timeout=self.timeout)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    lock.release()
                except LockError as e:
                    # The lock expired before the sweep finished
                    logger.warning(f"Sweep lock {self.name} was no longer held on release: {e}")


_local_guard = LocalSweepGuard()
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """Cliente Redis del proceso, creado en el primer uso"""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(settings.redis_url)
    return _redis_client


def get_sweep_guard():
    """Candado configurado por STATUS_SWEEP_LOCK_BACKEND"""
    if settings.STATUS_SWEEP_LOCK_BACKEND == "redis":
        return RedisSweepGuard(get_redis_client())
    return _local_guard
