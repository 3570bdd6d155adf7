"""Utility modules for logging, time handling and numeric helpers."""

from kag.utils.logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
