# Copyright (c) Syntropy Systems
"""fractal-eval stats command."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from fractal_eval.config import load_config
from fractal_eval.model_perf import ModelSeedPerformanceStore
from fractal_eval.models.stats import PolicyMemory, PromptPolicyStat
from fractal_eval.persistence import PersistenceGateway

console = Console()


def format_time_ago(timestamp: Optional[str]) -> str:
    """Format a timestamp as time ago."""
    if not timestamp:
        return "-"

    try:
        ts = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        now = datetime.now(timezone.utc)
        delta = now - ts
        total_seconds = int(delta.total_seconds())

        if total_seconds < 60:
            return "just now"
        elif total_seconds < 3600:
            minutes = total_seconds // 60
            return f"{minutes}m ago"
        elif total_seconds < 86400:
            hours = total_seconds // 3600
            return f"{hours}h ago"
        else:
            days = total_seconds // 86400
            return f"{days}d ago"
    except ValueError:
        return "-"


def format_score(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.3f}"


def stats(
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        "-p",
        help="Policy memory file (default: configured policy_memory_path)",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw persisted payload"),
) -> None:
    """
    Show learned prompt variant and model statistics.

    Reads the persisted policy memory; a missing or unreadable file shows as empty.
    """
    target = path if path is not None else Path(load_config().policy_memory_path)
    memory = PersistenceGateway(target).load()

    if as_json:
        console.print_json(json.dumps(memory.to_wire()))
        return

    if memory.is_empty():
        console.print(f"[dim]No policy memory at {target}[/dim]")
        return

    _show_prompt_table(memory.prompt_stats)
    _show_model_table(memory)


def _show_prompt_table(prompt_stats: dict[str, PromptPolicyStat]) -> None:
    """Display prompt variant statistics, best first."""
    table = Table(show_header=True, header_style="bold", title="Prompt variants")
    table.add_column("Variant")
    table.add_column("Runs", justify="right")
    table.add_column("Avg score", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Uncertainty", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("Updated")

    ranked = sorted(prompt_stats.items(), key=lambda item: item[1].avg_score, reverse=True)
    for variant_id, stat in ranked:
        table.add_row(
            variant_id,
            str(stat.count),
            format_score(stat.avg_score),
            format_score(stat.avg_confidence),
            format_score(stat.avg_uncertainty),
            f"{stat.avg_latency_ms:.0f}ms",
            format_time_ago(stat.last_updated_at),
        )

    console.print(table)


def _show_model_table(memory: PolicyMemory) -> None:
    """Display model performance by seed type with the leader per seed type."""
    store = ModelSeedPerformanceStore()
    store.merge(memory.model_seed_stats)
    leaders = store.top_model_per_seed_type()

    table = Table(show_header=True, header_style="bold", title="Models by seed type")
    table.add_column("Seed type")
    table.add_column("Model")
    table.add_column("Runs", justify="right")
    table.add_column("Avg score", justify="right")
    table.add_column("Last", justify="right")

    for row in store.all():
        is_leader = leaders.get(row.seed_type) == row.model
        model = f"[green]{row.model}[/green]" if is_leader else row.model
        table.add_row(
            row.seed_type,
            model,
            str(row.count),
            format_score(row.avg_score),
            format_score(row.last_score),
        )

    console.print(table)
