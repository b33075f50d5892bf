# Copyright (c) Syntropy Systems
"""Typed models for fractal-eval state, persistence, and telemetry."""

from .api import (
    BudgetCheckRequest,
    CostGuardSnapshot,
    EvalRunInput,
    EvalRunRecord,
    EvalStatsSnapshot,
    HealthResponse,
    MessageResponse,
    ModelSeedSnapshot,
    PromptVariantSnapshot,
    RecordTokenUsageRequest,
    SelectVariantRequest,
    SelectVariantResponse,
    TokenUsage,
    TokenUsageTotals,
    VariantCatalogRequest,
)
from .base import EvalBaseModel
from .stats import (
    POLICY_MEMORY_VERSION,
    ModelSeedStat,
    PolicyMemory,
    PromptPolicyStat,
    PromptVariantDescriptor,
    SeedType,
    make_model_seed_key,
)

__all__ = [
    "POLICY_MEMORY_VERSION",
    "BudgetCheckRequest",
    "CostGuardSnapshot",
    "EvalBaseModel",
    "EvalRunInput",
    "EvalRunRecord",
    "EvalStatsSnapshot",
    "HealthResponse",
    "MessageResponse",
    "ModelSeedSnapshot",
    "ModelSeedStat",
    "PolicyMemory",
    "PromptPolicyStat",
    "PromptVariantDescriptor",
    "PromptVariantSnapshot",
    "RecordTokenUsageRequest",
    "SeedType",
    "SelectVariantRequest",
    "SelectVariantResponse",
    "TokenUsage",
    "TokenUsageTotals",
    "VariantCatalogRequest",
    "make_model_seed_key",
]
