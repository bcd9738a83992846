"""
Rate limiting module for per-client request throttling.

Each client key owns one fixed window. The first request (or the first one
after the window has elapsed) opens a new window; later requests add their
cost until the configured maximum is reached.

Two stores sit behind the same interface:
- InMemoryRateLimiter: process-local dict, correct for a single-process
  deployment only. Windows are overwritten on expiry and never evicted.
- SupabaseRateLimiter: windows live in the `rate_limit_windows` table so the
  limit holds across worker processes.
"""

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from supabase import Client

from garment_synth.config import MAX_IMAGES_PER_BATCH, logger
from garment_synth.core.errors import RateLimitExceeded, ValidationError

RATE_LIMIT_TABLE = "rate_limit_windows"


@dataclass(slots=True)
class RateLimitWindow:
    client_id: str
    count: int
    window_reset_at: float


@dataclass(slots=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_at: str
    count: int
    limit: int
    retry_after: int


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class RateLimiter(ABC):
    """Fixed-window limiter keyed by client identifier."""

    def __init__(
        self,
        window_seconds: float,
        max_requests: int,
        clock: Callable[[], float] = time.time,
        name: str = "default",
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.clock = clock
        self.name = name

    @abstractmethod
    def _load(self, key: str) -> Optional[RateLimitWindow]:
        ...

    @abstractmethod
    def _store(self, window: RateLimitWindow) -> None:
        ...

    def allow(self, key: str, cost: int = 1) -> bool:
        """Count `cost` units against `key`; False means rejected with no mutation."""
        now = self.clock()
        window = self._load(key)

        if window is None or now > window.window_reset_at:
            self._store(
                RateLimitWindow(
                    client_id=key,
                    count=cost,
                    window_reset_at=now + self.window_seconds,
                )
            )
            logger.debug(
                "Rate limit window opened",
                extra={"limiter": self.name, "key": key, "count": cost},
            )
            return True

        if window.count + cost > self.max_requests:
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "limiter": self.name,
                    "key": key,
                    "count": window.count,
                    "cost": cost,
                    "limit": self.max_requests,
                },
            )
            return False

        window.count += cost
        self._store(window)
        return True

    def status(self, key: str) -> RateLimitStatus:
        """Report the key's window without counting a request."""
        now = self.clock()
        window = self._load(key)

        if window is None or now > window.window_reset_at:
            return RateLimitStatus(
                allowed=True,
                remaining=self.max_requests,
                reset_at=_iso(now + self.window_seconds),
                count=0,
                limit=self.max_requests,
                retry_after=0,
            )

        remaining = max(0, self.max_requests - window.count)
        return RateLimitStatus(
            allowed=remaining > 0,
            remaining=remaining,
            reset_at=_iso(window.window_reset_at),
            count=window.count,
            limit=self.max_requests,
            retry_after=max(0, math.ceil(window.window_reset_at - now)),
        )


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._windows: Dict[str, RateLimitWindow] = {}

    def _load(self, key: str) -> Optional[RateLimitWindow]:
        return self._windows.get(key)

    def _store(self, window: RateLimitWindow) -> None:
        self._windows[window.client_id] = window

    @property
    def window_count(self) -> int:
        return len(self._windows)


class SupabaseRateLimiter(RateLimiter):
    """
    Window store backed by Supabase.

    The read-modify-write is not atomic: two processes reading the same row at
    the same moment can both be admitted. Rows are namespaced by limiter name.
    """

    def __init__(self, client: Client, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.client = client

    def _row_id(self, key: str) -> str:
        return f"{self.name}:{key}"

    def _load(self, key: str) -> Optional[RateLimitWindow]:
        response = (
            self.client.table(RATE_LIMIT_TABLE)
            .select("client_id, count, window_reset_at")
            .eq("client_id", self._row_id(key))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None

        row = response.data[0]
        reset_at = datetime.fromisoformat(row["window_reset_at"])
        return RateLimitWindow(
            client_id=key,
            count=int(row["count"]),
            window_reset_at=reset_at.timestamp(),
        )

    def _store(self, window: RateLimitWindow) -> None:
        self.client.table(RATE_LIMIT_TABLE).upsert(
            {
                "client_id": self._row_id(window.client_id),
                "count": window.count,
                "window_reset_at": _iso(window.window_reset_at),
            }
        ).execute()


def build_rate_limiter(
    backend: str,
    window_seconds: float,
    max_requests: int,
    name: str,
    supabase_client: Optional[Client] = None,
) -> RateLimiter:
    """Create a limiter for the configured backend ("memory" or "supabase")."""
    if backend == "supabase":
        if supabase_client is None:
            from garment_synth.db import supabase_create_client

            supabase_client = supabase_create_client()
        if supabase_client is None:
            raise ValueError(
                "RATE_LIMIT_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_KEY"
            )
        logger.info(f"Using Supabase rate limit store for '{name}'")
        return SupabaseRateLimiter(
            supabase_client, window_seconds, max_requests, name=name
        )

    if backend != "memory":
        raise ValueError(f"Unknown rate limit backend: {backend}")

    return InMemoryRateLimiter(window_seconds, max_requests, name=name)


def enforce_rate_limit(
    limiter: RateLimiter, key: str, cost: int = 1, message: Optional[str] = None
) -> None:
    """Raise RateLimitExceeded when `limiter` rejects the request."""
    if limiter.allow(key, cost):
        return
    status = limiter.status(key)
    raise RateLimitExceeded(
        message
        or (
            f"Rate limit exceeded: at most {limiter.max_requests} requests per "
            f"{int(limiter.window_seconds)} seconds. Try again in {status.retry_after} seconds."
        ),
        retry_after=status.retry_after,
    )


def check_batch_size(count: int, max_images: int = MAX_IMAGES_PER_BATCH) -> None:
    """Per-request image cap, separate from the rate window."""
    if count > max_images:
        raise ValidationError(
            f"Too many images: a batch may contain at most {max_images} images "
            f"(got {count})"
        )


__all__ = [
    "RATE_LIMIT_TABLE",
    "RateLimitWindow",
    "RateLimitStatus",
    "RateLimiter",
    "InMemoryRateLimiter",
    "SupabaseRateLimiter",
    "build_rate_limiter",
    "enforce_rate_limit",
    "check_batch_size",
]
