"""Observability module for GraphDialog."""

from graphdialog.observability.logging import ContextLogger, setup_logging

__all__ = ["ContextLogger", "setup_logging"]
