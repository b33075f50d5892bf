# Copyright (c) Syntropy Systems
"""Pytest fixtures for fractal-eval tests."""

import os
import random
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from fractal_eval.config import EvalConfig
from fractal_eval.models import EvalRunInput, PromptVariantDescriptor
from fractal_eval.state import EvalState

# Store original cwd at module load time
_original_cwd = Path.cwd()

FIXED_TIME = "2026-01-01T00:00:00.000Z"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_dir(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary project with a .fractal config directory."""
    (temp_dir / ".fractal").mkdir()

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment overrides out of config loading."""
    for name in (
        "POLICY_MEMORY_PATH",
        "MAX_TOKENS_PER_SESSION",
        "TOKEN_WARNING_THRESHOLD",
        "PROMPT_EPSILON",
        "FRACTAL_EVAL_EPHEMERAL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_path(temp_dir: Path) -> Path:
    """Policy memory file path inside the temp directory."""
    return temp_dir / "data" / "policy-memory.json"


@pytest.fixture
def variants() -> list[PromptVariantDescriptor]:
    """Two-variant catalog."""
    return [
        PromptVariantDescriptor(id="A", label="Variant A"),
        PromptVariantDescriptor(id="B", label="Variant B"),
    ]


@pytest.fixture
def ephemeral_state() -> EvalState:
    """Eval state that never touches disk."""
    return EvalState(
        EvalConfig(ephemeral=True),
        rng=random.Random(1234),
        clock=lambda: FIXED_TIME,
    )


@pytest.fixture
def persistent_state(memory_path: Path) -> Generator[EvalState, None, None]:
    """Eval state persisting to memory_path with a short debounce."""
    state = EvalState(
        EvalConfig(policy_memory_path=str(memory_path), save_debounce_seconds=0.05),
        rng=random.Random(1234),
        clock=lambda: FIXED_TIME,
    )
    yield state
    state.close()


def make_run(**overrides: object) -> EvalRunInput:
    """Build an eval run input with sensible defaults."""
    values: dict[str, object] = {
        "question": "Why does time feel faster as we age?",
        "variant_id": "A",
        "variant_label": "Variant A",
        "model": "meta-llama/Llama-3.1-8B-Instruct",
        "seed_type": "causal",
        "score": 0.5,
        "confidence": 0.7,
        "uncertainty": 0.3,
        "latency_ms": 1200.0,
        "usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
        "strengths": ["specific"],
        "weaknesses": ["repetitive"],
        "update_policy": True,
    }
    values.update(overrides)
    return EvalRunInput(**values)
