# Copyright (c) Syntropy Systems
"""fractal-eval classify command."""

import typer
from rich.console import Console

from fractal_eval.seed_types import classify_seed_type

console = Console()


def classify(
    question: str = typer.Argument(..., help="Question to classify"),
) -> None:
    """Print the seed type a question would be recorded under."""
    console.print(classify_seed_type(question))
