# Copyright (c) Syntropy Systems
"""Versioned JSON persistence of policy memory with debounced writes."""

from __future__ import annotations

import json
import logging
import math
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock, RLock, Timer
from typing import NamedTuple, Optional, Union

from pydantic import StrictFloat, StrictStr, TypeAdapter, ValidationError

from fractal_eval.models.stats import (
    POLICY_MEMORY_VERSION,
    ModelSeedStat,
    PolicyMemory,
    PromptPolicyStat,
    make_model_seed_key,
)

logger = logging.getLogger(__name__)

SAVE_DEBOUNCE_SECONDS = 0.25

_NUMBER = TypeAdapter(StrictFloat)
_TEXT = TypeAdapter(StrictStr)

# Alias -> (python field name, adapter). Missing or invalid values fall back
# to the model's field default.
_PROMPT_STAT_FIELDS: dict[str, tuple[str, TypeAdapter]] = {
    "count": ("count", _NUMBER),
    "avgScore": ("avg_score", _NUMBER),
    "avgConfidence": ("avg_confidence", _NUMBER),
    "avgUncertainty": ("avg_uncertainty", _NUMBER),
    "avgLatencyMs": ("avg_latency_ms", _NUMBER),
    "lastScore": ("last_score", _NUMBER),
    "lastUpdatedAt": ("last_updated_at", _TEXT),
}
_MODEL_SEED_OPTIONAL_FIELDS: dict[str, tuple[str, TypeAdapter]] = {
    "count": ("count", _NUMBER),
    "avgScore": ("avg_score", _NUMBER),
    "lastScore": ("last_score", _NUMBER),
    "lastUpdatedAt": ("last_updated_at", _TEXT),
}
# Entries missing either identity field are dropped, not defaulted.
_MODEL_SEED_IDENTITY_FIELDS: dict[str, str] = {
    "model": "model",
    "seedType": "seed_type",
}


class FieldIssue(NamedTuple):
    """A problem found while decoding persisted policy memory."""

    section: str
    key: str
    field: Optional[str]
    reason: str


@dataclass
class DecodedPolicyMemory:
    """Result of decoding a raw payload: validated memory plus issues found."""

    memory: PolicyMemory = field(default_factory=PolicyMemory)
    issues: list[FieldIssue] = field(default_factory=list)
    discarded: bool = False


def _is_supported_version(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value == POLICY_MEMORY_VERSION


def _decode_fields(
    raw: dict[str, object],
    fields: dict[str, tuple[str, TypeAdapter]],
    section: str,
    key: str,
    issues: list[FieldIssue],
) -> dict[str, object]:
    values: dict[str, object] = {}
    for alias, (name, adapter) in fields.items():
        if alias not in raw:
            continue
        value = raw[alias]
        if value is None and name.startswith("last_"):
            continue
        try:
            values[name] = adapter.validate_python(value)
        except ValidationError:
            issues.append(FieldIssue(section, key, alias, f"invalid value {value!r}"))
    if "count" in values:
        count = values.pop("count")
        if isinstance(count, (int, float)) and math.isfinite(count) and count >= 0:
            values["count"] = int(count)
            if count != values["count"]:
                issues.append(FieldIssue(section, key, "count", f"fractional count {count!r} truncated"))
        else:
            issues.append(FieldIssue(section, key, "count", f"invalid count {count!r}"))
    return values


def decode_policy_memory(raw: object) -> DecodedPolicyMemory:
    """Decode a parsed JSON document into PolicyMemory.

    An unsupported or missing version discards the whole payload. Within a
    supported payload, malformed fields take their defaults and model/seed
    entries without string identity fields are dropped.
    """
    result = DecodedPolicyMemory()
    if not isinstance(raw, dict) or not _is_supported_version(raw.get("version")):
        version = raw.get("version") if isinstance(raw, dict) else None
        result.discarded = True
        result.issues.append(FieldIssue("payload", "", "version", f"unsupported version {version!r}"))
        return result

    prompt_section = raw.get("promptStats")
    if isinstance(prompt_section, dict):
        for variant_id, entry in prompt_section.items():
            if not isinstance(entry, dict):
                result.issues.append(FieldIssue("promptStats", variant_id, None, "entry is not an object"))
                continue
            values = _decode_fields(entry, _PROMPT_STAT_FIELDS, "promptStats", variant_id, result.issues)
            result.memory.prompt_stats[variant_id] = PromptPolicyStat(**values)

    seed_section = raw.get("modelSeedStats")
    if isinstance(seed_section, dict):
        for key, entry in seed_section.items():
            if not isinstance(entry, dict):
                result.issues.append(FieldIssue("modelSeedStats", key, None, "entry is not an object"))
                continue
            identity: dict[str, object] = {}
            for alias, name in _MODEL_SEED_IDENTITY_FIELDS.items():
                value = entry.get(alias)
                if isinstance(value, str):
                    identity[name] = value
                else:
                    result.issues.append(
                        FieldIssue("modelSeedStats", key, alias, f"identity field is {value!r}; entry dropped")
                    )
            if len(identity) != len(_MODEL_SEED_IDENTITY_FIELDS):
                continue
            values = _decode_fields(entry, _MODEL_SEED_OPTIONAL_FIELDS, "modelSeedStats", key, result.issues)
            stat = ModelSeedStat(**identity, **values)
            result.memory.model_seed_stats[make_model_seed_key(stat.model, stat.seed_type)] = stat

    return result


def resolve_memory_path(path: Union[str, Path]) -> Path:
    """Resolve a relative path against the current working directory."""
    resolved = Path(path).expanduser()
    if not resolved.is_absolute():
        resolved = Path.cwd() / resolved
    return resolved


class PersistenceGateway:
    """Load/save of the durable policy memory file.

    Saves are best-effort: failures are logged and never raised. In
    ephemeral mode loading and scheduling are no-ops.
    """

    _path: Path
    _ephemeral: bool
    _debounce_seconds: float
    _lock: Lock
    _save_lock: RLock
    _timer: Optional[Timer]
    _pending: Optional[Callable[[], PolicyMemory]]
    _generation: int

    def __init__(
        self,
        path: Union[str, Path],
        *,
        ephemeral: bool = False,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
    ) -> None:
        self._path = resolve_memory_path(path)
        self._ephemeral = ephemeral
        self._debounce_seconds = debounce_seconds
        self._lock = Lock()
        self._save_lock = RLock()
        self._timer = None
        self._pending = None
        self._generation = 0

    @property
    def path(self) -> Path:
        return self._path

    @path.setter
    def path(self, value: Union[str, Path]) -> None:
        self._path = resolve_memory_path(value)

    @property
    def ephemeral(self) -> bool:
        return self._ephemeral

    @property
    def has_pending_save(self) -> bool:
        with self._lock:
            return self._timer is not None

    def load(self, path: Optional[Union[str, Path]] = None) -> PolicyMemory:
        """Read policy memory. Never raises; any failure yields empty memory."""
        if self._ephemeral:
            return PolicyMemory()

        target = resolve_memory_path(path) if path is not None else self._path
        try:
            with target.open(encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            logger.debug("No policy memory at %s; starting empty", target)
            return PolicyMemory()
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read policy memory from %s: %s", target, exc)
            return PolicyMemory()

        decoded = decode_policy_memory(raw)
        if decoded.discarded:
            logger.warning("Discarding policy memory at %s: unsupported version", target)
            return PolicyMemory()
        for issue in decoded.issues:
            logger.warning(
                "Policy memory %s[%s].%s: %s", issue.section, issue.key, issue.field, issue.reason
            )
        logger.info(
            "Loaded policy memory from %s (%d prompt variants, %d model/seed pairs)",
            target,
            len(decoded.memory.prompt_stats),
            len(decoded.memory.model_seed_stats),
        )
        return decoded.memory

    def save(self, memory: PolicyMemory, path: Optional[Union[str, Path]] = None) -> bool:
        """Write policy memory atomically. Returns False (and logs) on failure."""
        target = resolve_memory_path(path) if path is not None else self._path
        tmp_path = target.with_name(f"{target.name}.tmp")
        try:
            payload = json.dumps(memory.to_wire(), indent=2)
            with self._save_lock:
                target.parent.mkdir(parents=True, exist_ok=True)
                with tmp_path.open("w", encoding="utf-8") as f:
                    _ = f.write(payload)
                os.replace(tmp_path, target)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to persist policy memory to %s: %s", target, exc)
            return False
        logger.debug("Persisted policy memory to %s", target)
        return True

    def schedule_save(self, collect: Callable[[], PolicyMemory]) -> None:
        """Debounce a save; the last call within the window wins.

        collect is called when the write happens, not when it is scheduled.
        """
        if self._ephemeral:
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = collect
            timer = Timer(self._debounce_seconds, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, generation: int) -> None:
        with self._save_lock:
            with self._lock:
                # A newer schedule_save superseded this timer
                if generation != self._generation:
                    return
                collect = self._pending
                self._timer = None
                self._pending = None
            if collect is not None:
                self._write(collect)

    def _write(self, collect: Callable[[], PolicyMemory]) -> None:
        try:
            memory = collect()
        except Exception:
            logger.exception("Failed to collect policy memory for saving")
            return
        _ = self.save(memory)

    def flush(self) -> None:
        """Perform any pending debounced save now.

        Waits for an in-flight timed save, so the file is current on return.
        """
        with self._save_lock:
            with self._lock:
                timer = self._timer
                collect = self._pending
                self._timer = None
                self._pending = None
            if timer is not None:
                timer.cancel()
            if collect is not None:
                self._write(collect)

    def close(self) -> None:
        """Flush pending writes before shutdown."""
        self.flush()
