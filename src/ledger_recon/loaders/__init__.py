"""Loaders for normalized record files."""

from .record_loader import RecordLoader

__all__ = ["RecordLoader"]
