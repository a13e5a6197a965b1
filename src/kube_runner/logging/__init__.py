"""Logging configuration for kube_runner."""

from kube_runner.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
