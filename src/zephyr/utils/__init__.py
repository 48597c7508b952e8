"""Shared helpers for Zephyr."""

from .logging import get_logger
from .remote_path import resolve_remote_path

__all__ = ["get_logger", "resolve_remote_path"]
