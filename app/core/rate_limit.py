from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Optional, Protocol, Tuple
from collections import deque

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.models.offer_submission_attempt import OfferSubmissionAttempt

Clock = Callable[[], float]


class OfferRateLimiter(Protocol):
    limit: int
    window_seconds: int

    def allow(self, buyer_uid: str, bid_id: str, db: Optional[Session] = None) -> bool: ...


class InMemoryRateLimiter:
    """
    Sliding window:
      at most `limit` hits per `window_seconds`.

    Keyed by (buyer_uid, bid_id). Process-local, so only an approximate
    throttle once the API runs on more than one worker.
    """
    def __init__(self, limit: int, window_seconds: int, clock: Clock = time.time):
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def allow(self, buyer_uid: str, bid_id: str, db: Optional[Session] = None) -> bool:
        now = self._clock()
        k = (buyer_uid, bid_id)
        with self._lock:
            if now - self._last_prune >= self.window_seconds:
                self._prune(now)

            hits = self._hits.setdefault(k, deque())
            self._expire(hits, now)

            if len(hits) >= self.limit:
                return False
            hits.append(now)
            return True

    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def _prune(self, now: float) -> None:
        """Forget keys whose whole window has drained. Caller holds the lock."""
        for k in list(self._hits):
            hits = self._hits[k]
            self._expire(hits, now)
            if not hits:
                del self._hits[k]
        self._last_prune = now


class DatabaseRateLimiter:
    """
    Sliding window over the shared offer_submission_attempts table.

    The attempt is committed before the caller continues, so a later failure
    in the same request does not refund it.
    """
    def __init__(self, limit: int, window_seconds: int, clock: Clock = time.time):
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._clock = clock

    def allow(self, buyer_uid: str, bid_id: str, db: Optional[Session] = None) -> bool:
        if db is None:
            raise ValueError("DatabaseRateLimiter requires a session.")

        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        cutoff = now - timedelta(seconds=self.window_seconds)
        key = f"{buyer_uid}:{bid_id}"

        db.execute(
            delete(OfferSubmissionAttempt).where(
                OfferSubmissionAttempt.limiter_key == key,
                OfferSubmissionAttempt.attempted_at <= cutoff,
            )
        )
        recent = db.execute(
            select(func.count())
            .select_from(OfferSubmissionAttempt)
            .where(
                OfferSubmissionAttempt.limiter_key == key,
                OfferSubmissionAttempt.attempted_at > cutoff,
            )
        ).scalar_one()

        if recent >= self.limit:
            db.commit()
            return False

        db.add(OfferSubmissionAttempt(limiter_key=key, attempted_at=now))
        db.commit()
        return True


def build_offer_rate_limiter(settings: Settings, clock: Clock = time.time) -> OfferRateLimiter:
    backend = settings.offer_rate_limit_backend
    if backend == "memory":
        return InMemoryRateLimiter(
            settings.offer_rate_limit_per_window,
            settings.offer_rate_limit_window_seconds,
            clock=clock,
        )
    if backend == "database":
        return DatabaseRateLimiter(
            settings.offer_rate_limit_per_window,
            settings.offer_rate_limit_window_seconds,
            clock=clock,
        )
    raise ValueError(f"unknown rate limit backend {backend}")
