"""CLI package exports."""

from .app import app, main
from .logging import configure_logging

__all__ = [
    "app",
    "main",
    "configure_logging",
]
