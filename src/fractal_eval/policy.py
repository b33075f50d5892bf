# Copyright (c) Syntropy Systems
"""Per-prompt-variant statistics and epsilon-greedy selection."""

from __future__ import annotations

import random
from collections.abc import Mapping, Sequence
from threading import Lock
from typing import Optional, TypeVar

from fractal_eval.errors import ConfigurationError
from fractal_eval.models.api import PromptVariantSnapshot
from fractal_eval.models.stats import PromptPolicyStat, PromptVariantDescriptor
from fractal_eval.stats import running_average

VariantT = TypeVar("VariantT", bound=PromptVariantDescriptor)


class PromptPolicyStore:
    """Thread-safe store of PromptPolicyStat rows keyed by variant id.

    Selection is epsilon-greedy: with probability epsilon a uniformly random
    variant is explored, otherwise the first variant (in caller order) with
    the strictly highest average score is exploited.
    """

    _stats: dict[str, PromptPolicyStat]
    _lock: Lock
    _rng: random.Random

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._stats = {}
        self._lock = Lock()
        self._rng = rng or random.Random()

    def _avg_score(self, variant_id: str) -> float:
        stat = self._stats.get(variant_id)
        return stat.avg_score if stat is not None else 0.0

    def select(self, variants: Sequence[VariantT], epsilon: float) -> VariantT:
        """Pick a variant for the next generation.

        Raises ConfigurationError when the catalog is empty.
        """
        if not variants:
            raise ConfigurationError("No prompt variants configured")

        with self._lock:
            if self._rng.random() < epsilon:
                return variants[self._rng.randrange(len(variants))]

            best_variant = variants[0]
            best_score = float("-inf")
            for variant in variants:
                score = self._avg_score(variant.id)
                if score > best_score:
                    best_score = score
                    best_variant = variant
            return best_variant

    def record(
        self,
        variant_id: str,
        score: float,
        confidence: Optional[float],
        uncertainty: Optional[float],
        latency_ms: float,
        updated_at: str,
    ) -> PromptPolicyStat:
        """Fold one judged generation into the variant's statistics."""
        confidence_value = confidence if confidence is not None else 0.0
        uncertainty_value = uncertainty if uncertainty is not None else 1.0

        with self._lock:
            previous = self._stats.get(variant_id)
            if previous is None:
                stat = PromptPolicyStat(
                    count=1,
                    avg_score=score,
                    avg_confidence=confidence_value,
                    avg_uncertainty=uncertainty_value,
                    avg_latency_ms=latency_ms,
                    last_score=score,
                    last_updated_at=updated_at,
                )
            else:
                n = previous.count
                stat = PromptPolicyStat(
                    count=n + 1,
                    avg_score=running_average(previous.avg_score, n, score),
                    avg_confidence=running_average(previous.avg_confidence, n, confidence_value),
                    avg_uncertainty=running_average(previous.avg_uncertainty, n, uncertainty_value),
                    avg_latency_ms=running_average(previous.avg_latency_ms, n, latency_ms),
                    last_score=score,
                    last_updated_at=updated_at,
                )
            self._stats[variant_id] = stat
            return stat.model_copy()

    def get(self, variant_id: str) -> Optional[PromptPolicyStat]:
        """Return a copy of one variant's statistics, or None if unseen."""
        with self._lock:
            stat = self._stats.get(variant_id)
            return stat.model_copy() if stat is not None else None

    def snapshot(self, variants: Sequence[PromptVariantDescriptor]) -> list[PromptVariantSnapshot]:
        """Join each supplied descriptor with its current (or default) statistics."""
        with self._lock:
            rows: list[PromptVariantSnapshot] = []
            for variant in variants:
                stat = self._stats.get(variant.id) or PromptPolicyStat()
                rows.append(
                    PromptVariantSnapshot(
                        id=variant.id,
                        label=variant.label,
                        **stat.model_dump(),
                    )
                )
            return rows

    def rank(self, variants: Sequence[VariantT]) -> list[VariantT]:
        """Return a copy of variants sorted by average score, best first."""
        with self._lock:
            scores = {variant.id: self._avg_score(variant.id) for variant in variants}
        return sorted(variants, key=lambda variant: scores[variant.id], reverse=True)

    def export(self) -> dict[str, PromptPolicyStat]:
        """Copy all rows, in first-observation order, for persistence."""
        with self._lock:
            return {key: stat.model_copy() for key, stat in self._stats.items()}

    def merge(self, stats: Mapping[str, PromptPolicyStat]) -> None:
        """Install rows loaded from durable storage.

        Loaded rows overwrite rows with the same key; other rows are kept.
        """
        with self._lock:
            for key, stat in stats.items():
                self._stats[key] = stat.model_copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._stats)
