# Copyright (c) Syntropy Systems
"""Main CLI entry point for fractal-eval."""

import typer

from fractal_eval.cli.check_config import check_config
from fractal_eval.cli.classify import classify
from fractal_eval.cli.server_cmd import server
from fractal_eval.cli.stats import stats

app = typer.Typer(
    name="fractal-eval",
    help=(
        "Adaptive prompt policy memory. Inspect learned statistics, "
        "check configuration, serve telemetry."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(stats)
_ = app.command()(classify)
_ = app.command(name="check-config")(check_config)
_ = app.command()(server)


if __name__ == "__main__":
    app()
