"""
Rate Limiting - Per-conversation message throttling and idle reset.

Provides:
- RateLimiter: sliding-window message limit with a cooldown period
- SessionTimer: single deferred callback that resets an idle conversation

Both are owned by one ChatOrchestrator instance; nothing here is shared
between conversations, so no locking is needed.

Usage:
    limiter = RateLimiter(max_messages=15, window_s=60, cooldown_s=10)
    decision = limiter.check(language="vi")
    if not decision.allowed:
        reply(decision.message)
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from routers.chat_prompts import get_message

logger = logging.getLogger(__name__)


@dataclass
class RateLimitDecision:
    allowed: bool
    message: Optional[str] = None


class RateLimiter:
    """Sliding-window limiter: at most max_messages sends per window_s."""

    def __init__(
        self,
        max_messages: int = 15,
        window_s: float = 60.0,
        cooldown_s: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_messages = max_messages
        self.window_s = window_s
        self.cooldown_s = cooldown_s
        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self._cooldown_until = 0.0

    @property
    def in_cooldown(self) -> bool:
        return self._clock() < self._cooldown_until

    def check(self, language: str = "vi") -> RateLimitDecision:
        """
        Record one send attempt.

        Returns:
            RateLimitDecision; allowed=False carries a localized notice
        """
        now = self._clock()

        if now < self._cooldown_until:
            remaining = math.ceil(self._cooldown_until - now)
            return RateLimitDecision(False, get_message("rate_limited_wait", language, seconds=remaining))

        while self._timestamps and now - self._timestamps[0] >= self.window_s:
            self._timestamps.popleft()

        if len(self._timestamps) >= self.max_messages:
            self._cooldown_until = now + self.cooldown_s
            logger.warning(
                f"Rate limit exceeded ({len(self._timestamps)}/{self.max_messages} in {self.window_s:.0f}s), "
                f"cooldown {self.cooldown_s:.0f}s"
            )
            return RateLimitDecision(False, get_message("rate_limited", language))

        self._timestamps.append(now)
        return RateLimitDecision(True)

    def reset(self) -> None:
        self._timestamps.clear()
        self._cooldown_until = 0.0


class SessionTimer:
    """
    Idle timer. reset() (re)schedules on_expire after timeout_s on the
    running event loop; clear() cancels it.
    """

    def __init__(self, timeout_s: float, on_expire: Callable[[], None]):
        self.timeout_s = timeout_s
        self._on_expire = on_expire
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def reset(self) -> None:
        self.clear()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, session timer not scheduled")
            return
        self._handle = loop.call_later(self.timeout_s, self._fire)

    def clear(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.info(f"Session idle for {self.timeout_s:.0f}s, resetting conversation")
        self._on_expire()
