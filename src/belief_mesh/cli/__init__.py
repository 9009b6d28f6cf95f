"""Command-line interface for belief-mesh."""

from .simulate import main

__all__ = ["main"]
