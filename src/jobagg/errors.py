# src/jobagg/errors.py
"""Exceptions raised inside the pipeline. None of them escape `JobSearch`."""

from __future__ import annotations


class JobAggError(Exception):
    pass


class SourceError(JobAggError):
    """A source could not be queried (transport, parse or config problem)."""

    def __init__(self, source_id: str, message: str):
        super().__init__(f"{source_id}: {message}")
        self.source_id = source_id


class UnknownSourceError(SourceError):
    def __init__(self, source_id: str):
        super().__init__(source_id, "unknown source")


class SourceTimeoutError(SourceError):
    def __init__(self, source_id: str, timeout: float):
        super().__init__(source_id, f"timed out after {timeout:.1f}s")
        self.timeout = timeout


class CacheStoreError(JobAggError):
    """The cache store is unreachable or its contents are unreadable."""
