# Copyright (c) Syntropy Systems
"""Pydantic models for the learned statistics and their persisted form."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from .base import EvalBaseModel

POLICY_MEMORY_VERSION = 1

SeedType = Literal[
    "causal",
    "mechanistic",
    "counterfactual",
    "comparative",
    "decision",
    "exploratory",
]


class PromptVariantDescriptor(EvalBaseModel):
    """A prompt template competing for selection. Supplied by the caller."""

    id: str
    label: str = ""


class PromptPolicyStat(EvalBaseModel):
    """Running statistics for one prompt variant."""

    count: int = 0
    avg_score: float = 0.0
    avg_confidence: float = 0.0
    # Unseen variants are treated as maximally uncertain
    avg_uncertainty: float = 1.0
    avg_latency_ms: float = 0.0
    last_score: Optional[float] = None
    last_updated_at: Optional[str] = None


class ModelSeedStat(EvalBaseModel):
    """Running statistics for one (model, seed type) pair."""

    model: str
    seed_type: str
    count: int = 0
    avg_score: float = 0.0
    last_score: Optional[float] = None
    last_updated_at: Optional[str] = None


class PolicyMemory(EvalBaseModel):
    """Durable payload written to the policy memory file."""

    version: Literal[1] = POLICY_MEMORY_VERSION
    prompt_stats: dict[str, PromptPolicyStat] = Field(default_factory=dict)
    model_seed_stats: dict[str, ModelSeedStat] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        """Return True when no statistics have been learned."""
        return not self.prompt_stats and not self.model_seed_stats


def make_model_seed_key(model: str, seed_type: str) -> str:
    """Build the composite key used for the model/seed map."""
    return f"{model}::{seed_type}"
