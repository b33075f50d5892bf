# Copyright (c) Syntropy Systems
"""Eval state: the single entry point request handlers use.

Owns the prompt policy, model/seed performance, recent-run log, token budget
guard, and the persistence gateway. Construct one per process at the
composition root and pass it to handlers.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Optional, TypeVar, Union

from fractal_eval.budget import TokenBudgetGuard, clamp01
from fractal_eval.config import EvalConfig
from fractal_eval.model_perf import ModelSeedPerformanceStore
from fractal_eval.models.api import (
    CostGuardSnapshot,
    EvalRunInput,
    EvalRunRecord,
    EvalStatsSnapshot,
    ModelSeedSnapshot,
    TokenUsage,
)
from fractal_eval.models.stats import PolicyMemory, PromptVariantDescriptor, SeedType
from fractal_eval.persistence import PersistenceGateway
from fractal_eval.policy import PromptPolicyStore
from fractal_eval.recent import RecentRunLog
from fractal_eval.seed_types import classify_seed_type

logger = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 200

VariantT = TypeVar("VariantT", bound=PromptVariantDescriptor)


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class EvalState:
    """Online policy memory for prompt variant and model selection."""

    config: EvalConfig
    policy: PromptPolicyStore
    model_performance_store: ModelSeedPerformanceStore
    recent_runs: RecentRunLog
    budget: TokenBudgetGuard
    persistence: PersistenceGateway

    _clock: Callable[[], str]
    _load_lock: Lock
    _loaded: bool

    def __init__(
        self,
        config: Optional[EvalConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        persistence: Optional[PersistenceGateway] = None,
        clock: Optional[Callable[[], str]] = None,
    ) -> None:
        self.config = config or EvalConfig()
        self.policy = PromptPolicyStore(rng=rng)
        self.model_performance_store = ModelSeedPerformanceStore()
        self.recent_runs = RecentRunLog(capacity=self.config.max_recent_runs)
        self.budget = TokenBudgetGuard(
            max_tokens_per_session=self.config.max_tokens_per_session,
            warning_threshold=self.config.token_warning_threshold,
        )
        self.persistence = persistence or PersistenceGateway(
            self.config.policy_memory_path,
            ephemeral=self.config.ephemeral,
            debounce_seconds=self.config.save_debounce_seconds,
        )
        self._clock = clock or utcnow
        self._load_lock = Lock()
        self._loaded = False

    # --- Lifecycle ---

    def configure(
        self,
        policy_path: Union[str, Path],
        max_tokens_per_session: float,
        warning_threshold: float,
    ) -> None:
        """Overwrite the persistence path and the budget thresholds."""
        self.persistence.path = policy_path
        self.budget.configure(max_tokens_per_session, warning_threshold)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def ensure_loaded(self) -> None:
        """Load policy memory once; concurrent callers share the first load.

        Loaded rows are merged into the stores, so statistics recorded
        directly on a store beforehand survive.
        """
        if self._loaded:
            return
        with self._load_lock:
            if self._loaded:
                return
            try:
                memory = self.persistence.load()
                self.policy.merge(memory.prompt_stats)
                self.model_performance_store.merge(memory.model_seed_stats)
            finally:
                self._loaded = True

    def collect_memory(self) -> PolicyMemory:
        """Assemble the durable payload from the current statistics."""
        return PolicyMemory(
            prompt_stats=self.policy.export(),
            model_seed_stats=self.model_performance_store.export(),
        )

    def flush(self) -> None:
        """Write any pending policy memory now."""
        self.persistence.flush()

    def close(self) -> None:
        self.persistence.close()

    # --- Selection ---

    @staticmethod
    def classify_seed_type(question: str) -> SeedType:
        return classify_seed_type(question)

    def select_variant(
        self,
        variants: Sequence[VariantT],
        epsilon: Optional[float] = None,
    ) -> VariantT:
        """Pick a prompt variant; epsilon defaults to the configured value."""
        self.ensure_loaded()
        effective = self.config.epsilon if epsilon is None else epsilon
        return self.policy.select(variants, clamp01(effective))

    def rank_variants(self, variants: Sequence[VariantT]) -> list[VariantT]:
        self.ensure_loaded()
        return self.policy.rank(variants)

    # --- Recording ---

    def record_eval_run(self, run: EvalRunInput) -> EvalRunRecord:
        """Audit a judged generation; update policy only if run.update_policy."""
        self.ensure_loaded()
        now = self._clock()

        if run.update_policy:
            _ = self.policy.record(
                run.variant_id,
                run.score,
                run.confidence,
                run.uncertainty,
                run.latency_ms,
                updated_at=now,
            )
            _ = self.model_performance_store.record(
                run.model, run.seed_type, run.score, updated_at=now
            )
            self.persistence.schedule_save(self.collect_memory)

        record = EvalRunRecord(
            timestamp=now,
            question=run.question[:MAX_QUESTION_CHARS],
            variant_id=run.variant_id,
            variant_label=run.variant_label,
            model=run.model,
            seed_type=run.seed_type,
            score=run.score,
            confidence=run.confidence,
            uncertainty=run.uncertainty,
            latency_ms=run.latency_ms,
            usage=run.usage.model_copy(),
            strengths=list(run.strengths),
            weaknesses=list(run.weaknesses),
        )
        self.recent_runs.push(record)
        logger.debug(
            "Recorded eval run variant=%s model=%s seed=%s score=%.3f update_policy=%s",
            run.variant_id,
            run.model,
            run.seed_type,
            run.score,
            run.update_policy,
        )
        return record

    def record_token_usage(self, operation: str, usage: TokenUsage) -> None:
        self.budget.record(operation, usage)

    def assert_within_budget(self, operation: str) -> None:
        """Raise BudgetExceeded if the session budget is already spent."""
        self.budget.assert_within_budget(operation)

    # --- Read side ---

    def cost_guard(self) -> CostGuardSnapshot:
        return self.budget.snapshot()

    def model_performance(self) -> list[ModelSeedSnapshot]:
        self.ensure_loaded()
        return self.model_performance_store.all()

    def snapshot(self, variants: Sequence[PromptVariantDescriptor]) -> EvalStatsSnapshot:
        """Consolidated telemetry read model."""
        self.ensure_loaded()
        return EvalStatsSnapshot(
            prompt_variants=self.policy.snapshot(variants),
            recent_runs=self.recent_runs.all(),
            token_usage=self.budget.totals(),
            cost_guard=self.budget.snapshot(),
            model_performance=self.model_performance_store.all(),
            top_model_by_seed_type=self.model_performance_store.top_model_per_seed_type(),
        )
