# Copyright (c) Syntropy Systems
"""Configuration management for fractal-eval."""
from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, cast

import yaml

from fractal_eval.models.stats import PromptVariantDescriptor

CONFIG_DIR_NAME = ".fractal"
CONFIG_FILE_NAME = "config.yaml"

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def default_prompt_variants() -> list[PromptVariantDescriptor]:
    """Catalog served by the HTTP surface when none is configured."""
    return [
        PromptVariantDescriptor(id="v1-balanced", label="Balanced"),
        PromptVariantDescriptor(id="v2-divergent", label="Divergent"),
        PromptVariantDescriptor(id="v3-structured", label="Structured"),
    ]


@dataclass
class EvalConfig:
    """Configuration for fractal-eval."""

    # Where learned prompt/model statistics are persisted
    policy_memory_path: str = "./data/policy-memory.json"

    # Session token ceiling and the usage ratio that triggers a warning
    max_tokens_per_session: int = 40_000
    token_warning_threshold: float = 0.8

    # Exploration probability for prompt variant selection
    epsilon: float = 0.2

    # Debounce window for policy memory writes (seconds)
    save_debounce_seconds: float = 0.25

    max_recent_runs: int = 50

    # Never read or write policy memory (tests, one-off runs)
    ephemeral: bool = False

    prompt_variants: list[PromptVariantDescriptor] = field(default_factory=default_prompt_variants)


def find_config_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .fractal directory by walking up from start_path.

    Returns None if no .fractal directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        config_dir = current / CONFIG_DIR_NAME
        if config_dir.is_dir():
            return config_dir
        current = current.parent

    # Check root
    config_dir = current / CONFIG_DIR_NAME
    if config_dir.is_dir():
        return config_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global config directory (~/.fractal)."""
    return Path.home() / CONFIG_DIR_NAME


def parse_bool(raw: str) -> Optional[bool]:
    """Parse a boolean word; None if unrecognized."""
    normalized = raw.strip().lower()
    if normalized in _TRUE_WORDS:
        return True
    if normalized in _FALSE_WORDS:
        return False
    return None


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _apply_file_values(config: EvalConfig, data: Mapping[str, object]) -> None:
    policy_memory_path = data.get("policy_memory_path")
    if isinstance(policy_memory_path, str) and policy_memory_path.strip():
        config.policy_memory_path = policy_memory_path
    max_tokens = data.get("max_tokens_per_session")
    if _is_number(max_tokens):
        config.max_tokens_per_session = int(cast("float", max_tokens))
    threshold = data.get("token_warning_threshold")
    if _is_number(threshold):
        config.token_warning_threshold = float(cast("float", threshold))
    epsilon = data.get("epsilon")
    if _is_number(epsilon):
        config.epsilon = float(cast("float", epsilon))
    debounce = data.get("save_debounce_seconds")
    if _is_number(debounce):
        config.save_debounce_seconds = float(cast("float", debounce))
    max_recent_runs = data.get("max_recent_runs")
    if isinstance(max_recent_runs, int) and not isinstance(max_recent_runs, bool):
        config.max_recent_runs = max_recent_runs
    ephemeral = data.get("ephemeral")
    if isinstance(ephemeral, bool):
        config.ephemeral = ephemeral

    variants = data.get("prompt_variants")
    if isinstance(variants, list):
        parsed: list[PromptVariantDescriptor] = []
        for entry in variants:
            if isinstance(entry, dict) and isinstance(entry.get("id"), str):
                label = entry.get("label")
                parsed.append(
                    PromptVariantDescriptor(
                        id=entry["id"],
                        label=label if isinstance(label, str) else entry["id"],
                    )
                )
        if parsed:
            config.prompt_variants = parsed


def _apply_env_overrides(config: EvalConfig, env: Mapping[str, str]) -> None:
    policy_memory_path = env.get("POLICY_MEMORY_PATH")
    if policy_memory_path and policy_memory_path.strip():
        config.policy_memory_path = policy_memory_path.strip()

    max_tokens = env.get("MAX_TOKENS_PER_SESSION")
    if max_tokens is not None:
        try:
            config.max_tokens_per_session = int(max_tokens.strip())
        except ValueError:
            config.max_tokens_per_session = -1

    threshold = env.get("TOKEN_WARNING_THRESHOLD")
    if threshold is not None:
        try:
            config.token_warning_threshold = float(threshold.strip())
        except ValueError:
            config.token_warning_threshold = math.nan

    epsilon = env.get("PROMPT_EPSILON")
    if epsilon is not None:
        try:
            config.epsilon = float(epsilon.strip())
        except ValueError:
            config.epsilon = math.nan

    ephemeral = env.get("FRACTAL_EVAL_EPHEMERAL")
    if ephemeral is not None:
        parsed = parse_bool(ephemeral)
        if parsed is not None:
            config.ephemeral = parsed


def load_config(
    config_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> EvalConfig:
    """Load configuration from .fractal/config.yaml, then environment overrides.

    Looks for config in:
    1. Provided config_dir
    2. Nearest .fractal directory walking up
    3. ~/.fractal/config.yaml
    4. Defaults
    """
    config = EvalConfig()

    # Find config file
    config_path = None

    if config_dir is not None:
        config_path = config_dir / CONFIG_FILE_NAME
    else:
        found_dir = find_config_dir()
        if found_dir is not None:
            config_path = found_dir / CONFIG_FILE_NAME
        else:
            global_config = get_global_config_dir() / CONFIG_FILE_NAME
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, dict):
            _apply_file_values(config, cast("dict[str, object]", data))

    _apply_env_overrides(config, os.environ if env is None else env)
    return config


def validate_config(config: EvalConfig) -> list[str]:
    """Return a list of configuration problems; empty when valid."""
    errors: list[str] = []

    if config.max_tokens_per_session <= 0:
        errors.append("MAX_TOKENS_PER_SESSION must be a positive integer")

    if not (0.0 <= config.token_warning_threshold <= 1.0):
        errors.append("TOKEN_WARNING_THRESHOLD must be between 0 and 1")

    if not (0.0 <= config.epsilon <= 1.0):
        errors.append("PROMPT_EPSILON must be between 0 and 1")

    if config.save_debounce_seconds < 0:
        errors.append("save_debounce_seconds must not be negative")

    if config.max_recent_runs < 1:
        errors.append("max_recent_runs must be at least 1")

    if not config.prompt_variants:
        errors.append("At least one prompt variant must be configured")

    return errors
