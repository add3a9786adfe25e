"""Filesystem watching for Kiroku archives."""

from .service import ChangeSink, WatchService

__all__ = ["ChangeSink", "WatchService"]
