# Copyright (c) Syntropy Systems
"""Incremental mean shared by the statistics stores."""

from __future__ import annotations


def running_average(previous_average: float, previous_count: int, value: float) -> float:
    """Fold one more observation into a mean over previous_count values."""
    return (previous_average * previous_count + value) / (previous_count + 1)
