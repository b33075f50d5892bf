# Copyright (c) Syntropy Systems
"""fractal-eval check-config command."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from fractal_eval.config import load_config, validate_config

console = Console()


def check_config(
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        "-c",
        help="Directory containing config.yaml (default: nearest .fractal)",
    ),
) -> None:
    """
    Validate configuration from config.yaml and the environment.

    Exits with status 1 and lists every problem when the configuration is invalid.
    """
    config = load_config(config_dir)
    errors = validate_config(config)

    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    console.print("[green]Configuration OK[/green]")
    console.print(f"  [dim]policy memory:[/dim] {config.policy_memory_path}")
    console.print(f"  [dim]max tokens/session:[/dim] {config.max_tokens_per_session}")
    console.print(f"  [dim]warning threshold:[/dim] {config.token_warning_threshold}")
    console.print(f"  [dim]epsilon:[/dim] {config.epsilon}")
    console.print(f"  [dim]ephemeral:[/dim] {'yes' if config.ephemeral else 'no'}")
    console.print(
        f"  [dim]prompt variants:[/dim] {', '.join(v.id for v in config.prompt_variants)}"
    )
