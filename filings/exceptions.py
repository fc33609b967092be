"""
Exception taxonomy for the filings pipeline.

ConfigurationError is raised before any I/O and never retried.
TransientNetworkError is retried with backoff by the downloader.
FatalNetworkError and ParseError are turned into per-row statuses by the
batch operations, so one bad filing never aborts its siblings.
"""

from typing import Optional


class EdgarError(Exception):
    """Base class of every error raised by this package."""


class ConfigurationError(EdgarError):
    """Invalid input or settings (user agent, year, date, proxy, section id)."""


class TransientNetworkError(EdgarError):
    """A failure worth retrying: timeout, 429/500/503 or a soft-block page."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FatalNetworkError(EdgarError):
    """A failure that retrying will not fix (e.g. 404, attempts exhausted)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(EdgarError):
    """Index or filing content could not be interpreted."""


class NoFilingsFoundError(EdgarError):
    """No index record matched the requested identifiers/forms/years."""
