"""Command line interface (``python -m emigrant_pipeline.cli``)."""

from .__main__ import main

__all__ = ["main"]
