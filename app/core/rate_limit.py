# app/core/rate_limit.py
"""
Rate limiting por identidad con ventana fija.

El estado vive en memoria del proceso y se muta sin lock: dos requests
simultáneos de la misma identidad pueden admitirse de más. Es un límite
blando. Con varias instancias el límite efectivo es max_requests × instancias.
"""
import math
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: int
    limit: int
    retry_after: Optional[int] = None


@dataclass
class _WindowRecord:
    count: int
    reset_at: int


class FixedWindowRateLimiter:
    """Contador por identidad con ventana fija y limpieza oportunista"""

    def __init__(self, max_tracked: int = 10_000, clock: Optional[Callable[[], float]] = None):
        self.max_tracked = max_tracked
        self._clock = clock or time.time
        self._store: Dict[str, _WindowRecord] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def __len__(self) -> int:
        return len(self._store)

    def _sweep(self, now: int) -> None:
        expired = [key for key, record in list(self._store.items()) if record.reset_at < now]
        for key in expired:
            self._store.pop(key, None)
        if expired:
            logger.debug(f"Rate limiter: {len(expired)} ventanas expiradas eliminadas")

    def check(self, identity: str, config: RateLimitConfig) -> RateLimitDecision:
        now = self._now_ms()

        if len(self._store) > self.max_tracked:
            self._sweep(now)

        record = self._store.get(identity)

        if record is None or record.reset_at < now:
            reset_at = now + config.window_ms
            self._store[identity] = _WindowRecord(count=1, reset_at=reset_at)
            return RateLimitDecision(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_at=reset_at,
                limit=config.max_requests
            )

        if record.count >= config.max_requests:
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                reset_at=record.reset_at,
                limit=config.max_requests,
                retry_after=math.ceil((record.reset_at - now) / 1000)
            )

        record.count += 1
        return RateLimitDecision(
            allowed=True,
            remaining=config.max_requests - record.count,
            reset_at=record.reset_at,
            limit=config.max_requests
        )

    def reset(self) -> None:
        self._store.clear()


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    """Dependency: limitador inyectado en app.state"""
    return request.app.state.rate_limiter
