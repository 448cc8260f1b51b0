"""Crossload command-line interface."""

from crossload.cli.main import main

__all__ = ["main"]
