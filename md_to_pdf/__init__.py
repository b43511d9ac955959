"""
Command-line interface for converting Markdown documents into PDF files.

This package exposes a :func:`main` function which orchestrates argument parsing
and delegates rendering work to :mod:`mdrender`.
"""

from .cli import main

__all__ = ["main"]
