# Copyright (c) Syntropy Systems
"""CLI command for running the fractal-eval server."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from fractal_eval.config import load_config, validate_config

console = Console()


def server(
    port: int = typer.Option(3001, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    policy_path: Optional[Path] = typer.Option(
        None,
        "--policy-path",
        envvar="POLICY_MEMORY_PATH",
        help="Policy memory file",
    ),
    ephemeral: bool = typer.Option(
        False, "--ephemeral", help="Never read or write policy memory"
    ),
):
    """
    Start the fractal-eval server.

    The server exposes variant selection, eval run recording, token budget
    checks, and a telemetry snapshot over HTTP.

    Examples:

        # Start with policy memory in ./data
        fractal-eval server

        # Keep everything in memory
        fractal-eval server --ephemeral

        # Bind to all interfaces (for remote access)
        fractal-eval server --host 0.0.0.0 --port 8080
    """
    try:
        import uvicorn
    except ImportError:
        console.print("[red]Error:[/red] uvicorn is required for server mode.")
        console.print("Install with: pip install fractal-eval[server]")
        raise typer.Exit(1)

    config = load_config()
    if policy_path is not None:
        config.policy_memory_path = str(policy_path)
    if ephemeral:
        config.ephemeral = True

    errors = validate_config(config)
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    console.print("[bold]fractal-eval server[/bold]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    if config.ephemeral:
        console.print("  Policy memory: [dim]ephemeral[/dim]")
    else:
        console.print(f"  Policy memory: {config.policy_memory_path}")
    console.print(f"  Max tokens/session: {config.max_tokens_per_session}")
    console.print(f"  Epsilon: {config.epsilon}")
    console.print()

    from ..server.app import create_app

    app = create_app(config=config)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
    )
