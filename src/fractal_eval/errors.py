# Copyright (c) Syntropy Systems
"""Exceptions raised to callers of the eval state."""

from __future__ import annotations


class EvalStateError(Exception):
    """Base class for caller-visible eval state errors."""


class ConfigurationError(EvalStateError, ValueError):
    """Raised when the caller supplies an unusable configuration."""


class BudgetExceeded(EvalStateError):
    """Raised when the session token budget is already spent."""

    operation: str
    used_tokens: float
    max_tokens: int

    def __init__(self, operation: str, used_tokens: float, max_tokens: int) -> None:
        self.operation = operation
        self.used_tokens = used_tokens
        self.max_tokens = max_tokens
        super().__init__(
            f"Token budget exceeded for session ({used_tokens:.0f}/{max_tokens}) "
            f"before {operation}. Restart server or raise MAX_TOKENS_PER_SESSION."
        )
