"""Utilities for applying delay and rate limiting to contact writes."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from .base import Contact, ContactWriter


@dataclass
class DelayPolicy:
    """Fixed pause applied after every call."""

    delay_seconds: float = 0.0


class RateLimiter:
    """Enforces a minimum interval between calls on the event loop."""

    def __init__(self, calls_per_minute: Optional[float]) -> None:
        self._interval = 60.0 / float(calls_per_minute) if calls_per_minute else 0.0
        self._lock = asyncio.Lock()
        self._next_available = 0.0

    @property
    def interval(self) -> float:
        return self._interval

    async def acquire(self) -> None:
        if self._interval <= 0:
            return
        async with self._lock:
            now = time.monotonic()
            if now < self._next_available:
                await asyncio.sleep(self._next_available - now)
                now = time.monotonic()
            self._next_available = now + self._interval


class RateLimitedWriter:
    """Wrapper that enforces delay and rate limiting when writing contacts."""

    def __init__(
        self,
        writer: ContactWriter,
        *,
        display_name: Optional[str] = None,
        delay_policy: Optional[DelayPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._writer = writer
        self._display_name = display_name
        self._delay_policy = delay_policy or DelayPolicy()
        self._rate_limiter = rate_limiter or RateLimiter(None)

    @property
    def name(self) -> str:
        if self._display_name:
            return self._display_name
        return getattr(self._writer, "name", self._writer.__class__.__name__)

    @property
    def wrapped(self) -> ContactWriter:
        return self._writer

    async def upsert(self, workspace_id: str, contact: Contact) -> None:
        await self._rate_limiter.acquire()
        try:
            await self._writer.upsert(workspace_id, contact)
        finally:
            await self._delay()

    async def subscribe(self, workspace_id: str, contact: Contact, list_ids: Sequence[str]) -> None:
        await self._rate_limiter.acquire()
        try:
            await self._writer.subscribe(workspace_id, contact, list_ids)
        finally:
            await self._delay()

    async def _delay(self) -> None:
        if self._delay_policy.delay_seconds > 0:
            await asyncio.sleep(self._delay_policy.delay_seconds)

    async def aclose(self) -> None:
        close = getattr(self._writer, "aclose", None)
        if callable(close):
            await close()
