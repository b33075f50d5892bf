# Copyright (c) Syntropy Systems
"""fractal-eval command line interface."""
