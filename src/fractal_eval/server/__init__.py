# Copyright (c) Syntropy Systems
"""fractal-eval HTTP surface."""

from .app import create_app, get_state

__all__ = ["create_app", "get_state"]
