# Copyright (c) Syntropy Systems
"""Session token accounting and the budget guard."""

from __future__ import annotations

import logging
import math
from threading import Lock
from typing import Optional

from fractal_eval.errors import BudgetExceeded
from fractal_eval.models.api import CostGuardSnapshot, TokenUsage, TokenUsageTotals

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS_PER_SESSION = 40_000
DEFAULT_WARNING_THRESHOLD = 0.8


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; non-finite values become 0."""
    if not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def _non_negative(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(0.0, value)


class TokenBudgetGuard:
    """Cumulative token counters plus a threshold policy.

    Counters only grow for the lifetime of the process. The guard checks
    usage that has already accumulated; it does not estimate the cost of
    the call about to be made.
    """

    _total: TokenUsage
    _by_operation: dict[str, TokenUsage]
    _max_tokens_per_session: int
    _warning_threshold: float
    _lock: Lock

    def __init__(
        self,
        max_tokens_per_session: int = DEFAULT_MAX_TOKENS_PER_SESSION,
        warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
    ) -> None:
        self._total = TokenUsage()
        self._by_operation = {}
        self._max_tokens_per_session = DEFAULT_MAX_TOKENS_PER_SESSION
        self._warning_threshold = DEFAULT_WARNING_THRESHOLD
        self._lock = Lock()
        self.configure(max_tokens_per_session, warning_threshold)

    @property
    def max_tokens_per_session(self) -> int:
        return self._max_tokens_per_session

    @property
    def warning_threshold(self) -> float:
        return self._warning_threshold

    def configure(
        self,
        max_tokens_per_session: Optional[float] = None,
        warning_threshold: Optional[float] = None,
    ) -> None:
        """Overwrite thresholds.

        A non-finite or non-positive max is ignored and the previous value kept.
        The warning threshold is clamped into [0, 1].
        """
        with self._lock:
            if (
                max_tokens_per_session is not None
                and math.isfinite(max_tokens_per_session)
                and max_tokens_per_session > 0
            ):
                self._max_tokens_per_session = int(max_tokens_per_session)
            elif max_tokens_per_session is not None:
                logger.warning(
                    "Ignoring invalid max_tokens_per_session=%r; keeping %d",
                    max_tokens_per_session,
                    self._max_tokens_per_session,
                )
            if warning_threshold is not None:
                self._warning_threshold = clamp01(warning_threshold)

    def record(self, operation: str, usage: TokenUsage) -> None:
        """Add usage to the session totals and to the operation's bucket."""
        prompt_tokens = _non_negative(usage.prompt_tokens)
        completion_tokens = _non_negative(usage.completion_tokens)
        if math.isfinite(usage.total_tokens):
            total_tokens = max(0.0, usage.total_tokens)
        else:
            total_tokens = prompt_tokens + completion_tokens

        with self._lock:
            bucket = self._by_operation.setdefault(operation, TokenUsage())
            for counter in (self._total, bucket):
                counter.prompt_tokens += prompt_tokens
                counter.completion_tokens += completion_tokens
                counter.total_tokens += total_tokens

    def totals(self) -> TokenUsageTotals:
        """Copy of the session totals and per-operation buckets."""
        with self._lock:
            return TokenUsageTotals(
                total=self._total.model_copy(),
                by_operation={op: usage.model_copy() for op, usage in self._by_operation.items()},
            )

    def snapshot(self) -> CostGuardSnapshot:
        with self._lock:
            used = self._total.total_tokens
            max_tokens = self._max_tokens_per_session
            threshold = self._warning_threshold

        usage_ratio = used / max_tokens if max_tokens > 0 else 0.0
        return CostGuardSnapshot(
            max_tokens_per_session=max_tokens,
            used_tokens=used,
            remaining_tokens=max(0.0, max_tokens - used),
            warning_threshold=threshold,
            usage_ratio=usage_ratio,
            is_near_limit=usage_ratio >= threshold and used < max_tokens,
            is_limit_exceeded=used >= max_tokens,
        )

    def assert_within_budget(self, operation: str) -> None:
        """Raise BudgetExceeded if accumulated usage has reached the max."""
        guard = self.snapshot()
        if guard.is_limit_exceeded:
            logger.warning(
                "Refusing %s: token budget exceeded (%.0f/%d)",
                operation,
                guard.used_tokens,
                guard.max_tokens_per_session,
            )
            raise BudgetExceeded(operation, guard.used_tokens, guard.max_tokens_per_session)
