"""Rulewire command line interface."""

from rulewire.cli.main import app

__all__ = ["app"]
