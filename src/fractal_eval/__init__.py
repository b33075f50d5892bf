# Copyright (c) Syntropy Systems
"""
fractal-eval - Adaptive prompt policy memory.

Pick prompt variants, learn from judged runs, stay within the token budget.
"""

from fractal_eval.config import EvalConfig, load_config
from fractal_eval.errors import BudgetExceeded, ConfigurationError, EvalStateError
from fractal_eval.models import (
    EvalRunInput,
    EvalStatsSnapshot,
    PromptVariantDescriptor,
    SeedType,
    TokenUsage,
)
from fractal_eval.seed_types import classify_seed_type
from fractal_eval.state import EvalState

__version__ = "0.1.0"
__all__ = [
    "BudgetExceeded",
    "ConfigurationError",
    "EvalConfig",
    "EvalRunInput",
    "EvalState",
    "EvalStateError",
    "EvalStatsSnapshot",
    "PromptVariantDescriptor",
    "SeedType",
    "TokenUsage",
    "__version__",
    "classify_seed_type",
    "load_config",
]
