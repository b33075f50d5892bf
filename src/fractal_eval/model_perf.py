# Copyright (c) Syntropy Systems
"""Model performance statistics partitioned by seed type."""

from __future__ import annotations

from collections.abc import Mapping
from threading import Lock

from fractal_eval.models.api import ModelSeedSnapshot
from fractal_eval.models.stats import ModelSeedStat, make_model_seed_key
from fractal_eval.stats import running_average


class ModelSeedPerformanceStore:
    """Thread-safe store of ModelSeedStat rows keyed by (model, seed type).

    Rows keep the order in which each pair was first observed; ties in the
    rankings below are broken by that order.
    """

    _stats: dict[str, ModelSeedStat]
    _lock: Lock

    def __init__(self) -> None:
        self._stats = {}
        self._lock = Lock()

    def record(self, model: str, seed_type: str, score: float, updated_at: str) -> ModelSeedStat:
        """Fold one judged score into the (model, seed type) running average."""
        key = make_model_seed_key(model, seed_type)
        with self._lock:
            previous = self._stats.get(key)
            if previous is None:
                stat = ModelSeedStat(
                    model=model,
                    seed_type=seed_type,
                    count=1,
                    avg_score=score,
                    last_score=score,
                    last_updated_at=updated_at,
                )
            else:
                stat = previous.model_copy(
                    update={
                        "count": previous.count + 1,
                        "avg_score": running_average(previous.avg_score, previous.count, score),
                        "last_score": score,
                        "last_updated_at": updated_at,
                    }
                )
            self._stats[key] = stat
            return stat.model_copy()

    def top_model_per_seed_type(self) -> dict[str, str]:
        """Map each observed seed type to its best-scoring model.

        Seed types with no observations are absent.
        """
        best: dict[str, ModelSeedStat] = {}
        with self._lock:
            for stat in self._stats.values():
                current = best.get(stat.seed_type)
                if current is None or stat.avg_score > current.avg_score:
                    best[stat.seed_type] = stat
        return {seed_type: stat.model for seed_type, stat in best.items()}

    def all(self) -> list[ModelSeedSnapshot]:
        """All rows, best average score first."""
        with self._lock:
            rows = [ModelSeedSnapshot(**stat.model_dump()) for stat in self._stats.values()]
        return sorted(rows, key=lambda row: row.avg_score, reverse=True)

    def export(self) -> dict[str, ModelSeedStat]:
        """Copy all rows, in first-observation order, for persistence."""
        with self._lock:
            return {key: stat.model_copy() for key, stat in self._stats.items()}

    def merge(self, stats: Mapping[str, ModelSeedStat]) -> None:
        """Install rows loaded from durable storage.

        Loaded rows overwrite rows with the same key; other rows are kept.
        """
        with self._lock:
            for key, stat in stats.items():
                self._stats[key] = stat.model_copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._stats)
