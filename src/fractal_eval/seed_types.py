# Copyright (c) Syntropy Systems
"""Coarse classification of user questions into seed types."""

from __future__ import annotations

from typing import get_args

from fractal_eval.models.stats import SeedType

SEED_TYPES: tuple[SeedType, ...] = get_args(SeedType)


def classify_seed_type(question: str) -> SeedType:
    """Classify a free-text question. Total over any string, including empty."""
    normalized = question.strip().lower()
    if not normalized:
        return "exploratory"
    if normalized.startswith(("why ", "why?")):
        return "causal"
    if normalized.startswith(("how ", "how?")):
        return "mechanistic"
    if "what if" in normalized:
        return "counterfactual"
    if " vs " in normalized or "compare" in normalized:
        return "comparative"
    if normalized.startswith(("should ", "could ", "would ")):
        return "decision"
    return "exploratory"
