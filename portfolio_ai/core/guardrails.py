"""
Cost guardrails and limits enforcement.

Tracks per-user daily token consumption and rejects requests once a user's
budget is spent. The limiter is a fixed window: the whole table resets once
more than 24 hours have passed since the last reset. It is a coarse daily
cost guardrail, not a burst-smoothing rate limiter.

Enforcement Order (per request):
1. Compliance blocklist - blocked queries never reach the budget check
2. Cache lookup - cached answers cost nothing and are always served
3. Budget check - must pass before any paid model call is issued
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .logging import get_logger
from .models import utcnow
from .token_counter import TokenUsage

logger = get_logger(__name__)

DEFAULT_DAILY_TOKEN_BUDGET = 1_000_000
DEFAULT_WINDOW = timedelta(hours=24)


class GuardrailViolation(Exception):
    """Raised when a guardrail rejects a request."""

    user_message = "This request could not be processed."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class QuotaExceededError(GuardrailViolation):
    """Raised when a user has spent their daily token budget."""

    def __init__(self, user_id: str, used: int, limit: int, resets_at: datetime):
        super().__init__(
            f"Daily token limit exceeded for user {user_id}: {used:,} of {limit:,} tokens used",
            user_message=(
                "You've reached today's limit for AI questions. "
                f"Your allowance resets at {resets_at:%Y-%m-%d %H:%M} UTC."
            ),
        )
        self.user_id = user_id
        self.used = used
        self.limit = limit
        self.resets_at = resets_at


class UsageLimiter:
    """Per-user daily token budget, shared across request threads."""

    def __init__(
        self,
        daily_budget: int = DEFAULT_DAILY_TOKEN_BUDGET,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the limiter.

        Args:
            daily_budget: Tokens each user may consume per window
            window: Length of the fixed window
            clock: Source of the current time

        Raises:
            ValueError: If budget or window is not positive
        """
        if daily_budget <= 0:
            raise ValueError("daily_budget must be > 0")
        if window <= timedelta(0):
            raise ValueError("window must be positive")

        self.daily_budget = daily_budget
        self.window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens: Dict[str, int] = {}
        self._last_reset = clock()

    def is_over_budget(self, user_id: str) -> bool:
        """Whether the user has used their whole budget for the current window."""
        with self._lock:
            self._maybe_reset()
            return self._tokens.get(user_id, 0) >= self.daily_budget

    def check_limit(self, user_id: str) -> None:
        """Verify a user may issue a paid model call.

        Raises:
            QuotaExceededError: If the user's running total meets or exceeds the budget
        """
        with self._lock:
            self._maybe_reset()
            used = self._tokens.get(user_id, 0)
            resets_at = self._last_reset + self.window

        if used >= self.daily_budget:
            logger.warning(
                "quota_exceeded",
                user_id=user_id,
                tokens_used=used,
                daily_limit=self.daily_budget,
            )
            raise QuotaExceededError(user_id, used, self.daily_budget, resets_at)

    def record_usage(self, user_id: str, usage: TokenUsage) -> int:
        """Add a call's tokens to the user's running total.

        Returns:
            The user's new total for the current window
        """
        with self._lock:
            self._maybe_reset()
            total = self._tokens.get(user_id, 0) + usage.total_tokens
            self._tokens[user_id] = total
        return total

    def get_usage_stats(self, user_id: str) -> Dict[str, object]:
        with self._lock:
            self._maybe_reset()
            used = self._tokens.get(user_id, 0)
            return {
                "tokens_used_today": used,
                "tokens_remaining": max(0, self.daily_budget - used),
                "daily_limit": self.daily_budget,
                "reset_time": self._last_reset + self.window,
            }

    def _maybe_reset(self) -> None:
        # Caller holds the lock
        now = self._clock()
        if now - self._last_reset > self.window:
            if self._tokens:
                logger.info("usage_window_reset", users=len(self._tokens))
            self._tokens = {}
            self._last_reset = now
