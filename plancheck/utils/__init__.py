"""Shared utilities."""

from .logging import setup_logging, plan_logger

__all__ = [
    "setup_logging",
    "plan_logger",
]
