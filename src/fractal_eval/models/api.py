# Copyright (c) Syntropy Systems
"""Pydantic models for eval runs, telemetry snapshots, and API requests."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .base import EvalBaseModel
from .stats import ModelSeedStat, PromptVariantDescriptor, SeedType


class TokenUsage(EvalBaseModel):
    """Prompt/completion/total token triple."""

    prompt_tokens: float = 0
    completion_tokens: float = 0
    total_tokens: float = 0


class TokenUsageTotals(EvalBaseModel):
    """Session-wide token usage plus per-operation buckets."""

    total: TokenUsage = Field(default_factory=TokenUsage)
    by_operation: dict[str, TokenUsage] = Field(default_factory=dict)


class EvalRunInput(EvalBaseModel):
    """A completed generation plus its judgment, as reported by a handler."""

    question: str
    variant_id: str
    variant_label: str = ""
    model: str
    seed_type: SeedType
    score: float
    confidence: Optional[float] = None
    uncertainty: Optional[float] = None
    latency_ms: float = 0.0
    usage: TokenUsage = Field(default_factory=TokenUsage)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    update_policy: bool = True


class EvalRunRecord(EvalBaseModel):
    """One audited eval outcome in the recent-run log."""

    timestamp: str
    question: str
    variant_id: str
    variant_label: str
    model: str
    seed_type: SeedType
    score: float
    confidence: Optional[float] = None
    uncertainty: Optional[float] = None
    latency_ms: float
    usage: TokenUsage
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)


class PromptVariantSnapshot(EvalBaseModel):
    """A prompt variant joined with its current statistics."""

    id: str
    label: str
    count: int = 0
    avg_score: float = 0.0
    avg_confidence: float = 0.0
    avg_uncertainty: float = 1.0
    avg_latency_ms: float = 0.0
    last_score: Optional[float] = None
    last_updated_at: Optional[str] = None


class ModelSeedSnapshot(ModelSeedStat):
    """Model performance row for telemetry."""


class CostGuardSnapshot(EvalBaseModel):
    """Token budget state at a point in time."""

    max_tokens_per_session: int
    used_tokens: float
    remaining_tokens: float
    warning_threshold: float
    usage_ratio: float
    is_near_limit: bool
    is_limit_exceeded: bool


class EvalStatsSnapshot(EvalBaseModel):
    """Consolidated read model for telemetry consumers."""

    prompt_variants: list[PromptVariantSnapshot] = Field(default_factory=list)
    recent_runs: list[EvalRunRecord] = Field(default_factory=list)
    token_usage: TokenUsageTotals = Field(default_factory=TokenUsageTotals)
    cost_guard: CostGuardSnapshot
    model_performance: list[ModelSeedSnapshot] = Field(default_factory=list)
    top_model_by_seed_type: dict[str, str] = Field(default_factory=dict)


# --- Request/response bodies for the HTTP surface ---


class VariantCatalogRequest(EvalBaseModel):
    """Request carrying a caller-supplied prompt variant catalog."""

    variants: list[PromptVariantDescriptor]


class SelectVariantRequest(VariantCatalogRequest):
    """Request to pick a prompt variant for a new generation."""

    epsilon: Optional[float] = Field(None, ge=0.0, le=1.0)


class SelectVariantResponse(EvalBaseModel):
    """Selected prompt variant."""

    variant: PromptVariantDescriptor


class RecordTokenUsageRequest(EvalBaseModel):
    """Request to add token usage to an operation bucket."""

    operation: str
    usage: TokenUsage


class BudgetCheckRequest(EvalBaseModel):
    """Request to verify the session budget before an operation."""

    operation: str


class MessageResponse(EvalBaseModel):
    """Generic message response."""

    message: str


class HealthResponse(EvalBaseModel):
    """Health check response."""

    status: str
    loaded: bool
