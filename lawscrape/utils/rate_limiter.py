"""Request pacing: a token-bucket limiter for HTTP and fixed browser delays."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token-bucket rate limiter.

    Args:
        requests_per_second: Maximum sustained request rate.
        burst: Maximum burst size (defaults to requests_per_second).
        sleep: Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        requests_per_second: float = 2.0,
        burst: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.rate = requests_per_second
        self.burst = burst or max(1, int(requests_per_second))
        self._sleep = sleep
        self._timestamps: deque[float] = deque()

    def wait(self) -> None:
        """Block until a request is allowed."""
        now = time.monotonic()
        # Remove timestamps outside the window
        window = 1.0 / self.rate * self.burst
        while self._timestamps and now - self._timestamps[0] > window:
            self._timestamps.popleft()

        if len(self._timestamps) >= self.burst:
            sleep_until = self._timestamps[0] + window
            sleep_time = sleep_until - now
            if sleep_time > 0:
                self._sleep(sleep_time)

        self._timestamps.append(time.monotonic())


@dataclass
class NavigationDelays:
    """Fixed pauses around browser actions.

    inter_navigation is slept before every page load, post_action after every
    load, click or dropdown selection. Both are seconds; zero disables them.
    """

    inter_navigation: float = 2.0
    post_action: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config: dict | None) -> "NavigationDelays":
        config = config or {}
        return cls(
            inter_navigation=float(config.get("inter_navigation", 2.0)),
            post_action=float(config.get("post_action", 1.0)),
        )

    @classmethod
    def none(cls) -> "NavigationDelays":
        return cls(inter_navigation=0.0, post_action=0.0)

    def before_navigation(self) -> None:
        self._pause(self.inter_navigation)

    def after_action(self) -> None:
        self._pause(self.post_action)

    def _pause(self, seconds: float) -> None:
        if seconds > 0:
            logger.debug("Pausing %.1fs", seconds)
            self.sleep(seconds)
