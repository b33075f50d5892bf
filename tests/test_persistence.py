# Copyright (c) Syntropy Systems
"""Tests for policy memory persistence."""

import json
import logging
import threading
import time
from pathlib import Path

import pytest

from fractal_eval.models import ModelSeedStat, PolicyMemory, PromptPolicyStat
from fractal_eval.persistence import PersistenceGateway, decode_policy_memory


def populated_memory() -> PolicyMemory:
    return PolicyMemory(
        prompt_stats={
            "v1-balanced": PromptPolicyStat(
                count=3,
                avg_score=0.61,
                avg_confidence=0.7,
                avg_uncertainty=0.25,
                avg_latency_ms=1234.5,
                last_score=0.8,
                last_updated_at="2026-01-01T00:00:00.000Z",
            ),
            "v2-divergent": PromptPolicyStat(count=1, avg_score=0.2, last_score=0.2),
        },
        model_seed_stats={
            "m1::causal": ModelSeedStat(model="m1", seed_type="causal", count=2, avg_score=0.5, last_score=0.4),
            "m2::decision": ModelSeedStat(model="m2", seed_type="decision", count=1, avg_score=0.9),
        },
    )


def write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload))


class TestSaveAndLoad:
    """Tests for PersistenceGateway.save/load."""

    def test_round_trip(self, memory_path):
        """Saved statistics reload with identical values for every key."""
        memory = populated_memory()
        assert PersistenceGateway(memory_path).save(memory) is True

        loaded = PersistenceGateway(memory_path).load()
        assert loaded == memory
        assert list(loaded.prompt_stats) == ["v1-balanced", "v2-divergent"]
        assert list(loaded.model_seed_stats) == ["m1::causal", "m2::decision"]

    def test_save_uses_camel_case_schema(self, memory_path):
        """The file holds a versioned payload with camelCase keys."""
        PersistenceGateway(memory_path).save(populated_memory())

        data = json.loads(memory_path.read_text())
        assert data["version"] == 1
        assert set(data) == {"version", "promptStats", "modelSeedStats"}
        stat = data["promptStats"]["v1-balanced"]
        assert stat["avgScore"] == 0.61
        assert stat["avgLatencyMs"] == 1234.5
        assert stat["lastUpdatedAt"] == "2026-01-01T00:00:00.000Z"
        seed = data["modelSeedStats"]["m1::causal"]
        assert seed["model"] == "m1"
        assert seed["seedType"] == "causal"

    def test_save_creates_parent_directories(self, temp_dir):
        """Missing parent directories are created."""
        target = temp_dir / "deep" / "nested" / "memory.json"
        assert PersistenceGateway(target).save(populated_memory()) is True
        assert target.exists()
        assert not target.with_name("memory.json.tmp").exists()

    def test_save_failure_is_logged_not_raised(self, temp_dir, caplog):
        """An unwritable destination returns False and logs a warning."""
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        target = blocker / "memory.json"

        with caplog.at_level(logging.WARNING, logger="fractal_eval.persistence"):
            assert PersistenceGateway(target).save(populated_memory()) is False
        assert "Failed to persist policy memory" in caplog.text

    def test_missing_file_is_empty_memory(self, memory_path):
        """Absence of the file means no prior memory."""
        assert PersistenceGateway(memory_path).load().is_empty()

    def test_corrupt_json_is_empty_memory(self, memory_path):
        """Unparseable content degrades to empty memory."""
        memory_path.parent.mkdir(parents=True)
        memory_path.write_text("{not json")
        assert PersistenceGateway(memory_path).load().is_empty()

    def test_directory_path_is_empty_memory(self, temp_dir):
        """An I/O error on read degrades to empty memory."""
        assert PersistenceGateway(temp_dir).load().is_empty()

    @pytest.mark.parametrize(
        "payload",
        [
            {"version": 2, "promptStats": {"A": {"count": 1, "avgScore": 0.5}}},
            {"promptStats": {"A": {"count": 1, "avgScore": 0.5}}},
            {"version": "1", "promptStats": {"A": {"count": 1, "avgScore": 0.5}}},
            {"version": True, "promptStats": {"A": {"count": 1, "avgScore": 0.5}}},
            [1, 2, 3],
        ],
    )
    def test_unsupported_version_discards_everything(self, memory_path, payload):
        """Any version other than 1 yields empty memory, not a partial one."""
        write_json(memory_path, payload)
        assert PersistenceGateway(memory_path).load().is_empty()

    def test_ephemeral_load_ignores_file(self, memory_path):
        """Ephemeral mode never reads from disk."""
        PersistenceGateway(memory_path).save(populated_memory())
        assert PersistenceGateway(memory_path, ephemeral=True).load().is_empty()


class TestDecodePolicyMemory:
    """Tests for field-level validation of persisted data."""

    def test_malformed_fields_take_defaults(self):
        """Each invalid field falls back to its own default."""
        decoded = decode_policy_memory(
            {
                "version": 1,
                "promptStats": {
                    "A": {
                        "count": "three",
                        "avgScore": 0.4,
                        "avgConfidence": None,
                        "avgUncertainty": "high",
                        "avgLatencyMs": [1],
                        "lastScore": "0.5",
                        "lastUpdatedAt": 12345,
                    }
                },
            }
        )
        stat = decoded.memory.prompt_stats["A"]
        assert stat.count == 0
        assert stat.avg_score == 0.4
        assert stat.avg_confidence == 0.0
        assert stat.avg_uncertainty == 1.0
        assert stat.avg_latency_ms == 0.0
        assert stat.last_score is None
        assert stat.last_updated_at is None
        flagged = {issue.field for issue in decoded.issues}
        assert {"count", "avgConfidence", "avgUncertainty", "avgLatencyMs", "lastScore", "lastUpdatedAt"} <= flagged

    def test_missing_fields_take_defaults(self):
        """An empty entry becomes a default row."""
        decoded = decode_policy_memory({"version": 1, "promptStats": {"A": {}}})
        assert decoded.memory.prompt_stats["A"] == PromptPolicyStat()
        assert decoded.issues == []

    def test_boolean_is_not_a_number(self):
        """Booleans are rejected for numeric fields."""
        decoded = decode_policy_memory({"version": 1, "promptStats": {"A": {"avgScore": True}}})
        assert decoded.memory.prompt_stats["A"].avg_score == 0.0

    def test_fractional_count_is_reported(self):
        """A fractional count is truncated and flagged; integral floats pass."""
        decoded = decode_policy_memory(
            {
                "version": 1,
                "promptStats": {"A": {"count": 2.5}, "B": {"count": 3.0}},
                "modelSeedStats": {"m::causal": {"model": "m", "seedType": "causal", "count": 1.5}},
            }
        )
        assert decoded.memory.prompt_stats["A"].count == 2
        assert decoded.memory.prompt_stats["B"].count == 3
        assert decoded.memory.model_seed_stats["m::causal"].count == 1
        assert sorted((issue.key, issue.field) for issue in decoded.issues) == [
            ("A", "count"),
            ("m::causal", "count"),
        ]

    def test_non_object_entries_are_skipped(self):
        """Entries that are not objects are ignored."""
        decoded = decode_policy_memory(
            {"version": 1, "promptStats": {"A": 5, "B": {"avgScore": 0.3}}, "modelSeedStats": {"x": None}}
        )
        assert list(decoded.memory.prompt_stats) == ["B"]
        assert decoded.memory.model_seed_stats == {}

    def test_invalid_identity_drops_only_that_entry(self, memory_path):
        """A model/seed entry with a numeric model is dropped; others survive."""
        write_json(
            memory_path,
            {
                "version": 1,
                "promptStats": {},
                "modelSeedStats": {
                    "m1::causal": {"model": "m1", "seedType": "causal", "count": 2, "avgScore": 0.5},
                    "42::causal": {"model": 42, "seedType": "causal", "count": 1, "avgScore": 0.9},
                    "m2::decision": {"model": "m2", "seedType": "decision", "count": 1, "avgScore": 0.7},
                    "m3::?": {"model": "m3", "count": 1, "avgScore": 0.7},
                },
            },
        )

        loaded = PersistenceGateway(memory_path).load()
        assert list(loaded.model_seed_stats) == ["m1::causal", "m2::decision"]
        assert loaded.model_seed_stats["m1::causal"].avg_score == 0.5
        assert loaded.model_seed_stats["m2::decision"].avg_score == 0.7

    def test_unknown_version_reports_discard(self):
        """Decoding flags a discarded payload."""
        decoded = decode_policy_memory({"version": 2})
        assert decoded.discarded is True
        assert decoded.memory.is_empty()


class TestDebouncedSave:
    """Tests for schedule_save/flush."""

    def test_repeated_calls_collapse_into_one_write(self, memory_path):
        """Calls within the window produce a single write of the latest state."""
        gateway = PersistenceGateway(memory_path, debounce_seconds=0.1)
        calls: list[int] = []
        lock = threading.Lock()

        def collect() -> PolicyMemory:
            with lock:
                calls.append(1)
            return populated_memory()

        for _ in range(10):
            gateway.schedule_save(collect)

        assert not memory_path.exists()
        deadline = time.monotonic() + 5.0
        while not memory_path.exists() and time.monotonic() < deadline:
            time.sleep(0.02)
        time.sleep(0.2)

        assert memory_path.exists()
        assert len(calls) == 1
        assert gateway.has_pending_save is False

    def test_payload_collected_at_write_time(self, memory_path):
        """The write reflects state at the time it fires, not when scheduled."""
        gateway = PersistenceGateway(memory_path, debounce_seconds=10.0)
        memory = PolicyMemory()
        gateway.schedule_save(lambda: memory)

        memory.prompt_stats["late"] = PromptPolicyStat(count=1, avg_score=0.3)
        gateway.flush()

        loaded = PersistenceGateway(memory_path).load()
        assert "late" in loaded.prompt_stats

    def test_flush_writes_pending_immediately(self, memory_path):
        """Flush performs a pending save without waiting for the timer."""
        gateway = PersistenceGateway(memory_path, debounce_seconds=10.0)
        gateway.schedule_save(populated_memory)
        assert gateway.has_pending_save is True

        gateway.close()
        assert gateway.has_pending_save is False
        assert PersistenceGateway(memory_path).load() == populated_memory()

    def test_flush_without_pending_is_noop(self, memory_path):
        """Flushing with nothing scheduled writes nothing."""
        PersistenceGateway(memory_path).flush()
        assert not memory_path.exists()

    def test_ephemeral_schedule_is_noop(self, memory_path):
        """Ephemeral mode never schedules or writes."""
        gateway = PersistenceGateway(memory_path, ephemeral=True, debounce_seconds=0.0)
        gateway.schedule_save(populated_memory)
        assert gateway.has_pending_save is False
        gateway.flush()
        assert not memory_path.exists()

    def test_collect_failure_is_logged(self, memory_path, caplog):
        """A failing collector is logged and does not escape."""
        gateway = PersistenceGateway(memory_path, debounce_seconds=10.0)

        def broken() -> PolicyMemory:
            raise RuntimeError("boom")

        gateway.schedule_save(broken)
        with caplog.at_level(logging.ERROR, logger="fractal_eval.persistence"):
            gateway.flush()
        assert "Failed to collect policy memory" in caplog.text
        assert not memory_path.exists()
