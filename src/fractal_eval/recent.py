# Copyright (c) Syntropy Systems
"""Bounded, most-recent-first log of eval runs."""

from __future__ import annotations

from threading import Lock

from fractal_eval.models.api import EvalRunRecord

MAX_RECENT_RUNS = 50


class RecentRunLog:
    """Ring buffer of EvalRunRecord, newest at index 0. Not persisted."""

    _runs: list[EvalRunRecord]
    _capacity: int
    _lock: Lock

    def __init__(self, capacity: int = MAX_RECENT_RUNS) -> None:
        if capacity < 1:
            msg = "capacity must be at least 1"
            raise ValueError(msg)
        self._runs = []
        self._capacity = capacity
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, record: EvalRunRecord) -> None:
        """Insert at the front, dropping the oldest entries past capacity."""
        with self._lock:
            self._runs.insert(0, record)
            del self._runs[self._capacity:]

    def all(self) -> list[EvalRunRecord]:
        """Copy of the log; mutating it does not affect the log."""
        with self._lock:
            return [run.model_copy(deep=True) for run in self._runs]

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)
