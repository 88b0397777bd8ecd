"""Exception hierarchy shared across the pipeline."""
from __future__ import annotations

from typing import Iterable, List


class LqsPipelineError(RuntimeError):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(LqsPipelineError):
    """Raised when configuration files are missing or malformed."""


class ParseError(LqsPipelineError):
    """Raised when an uploaded file cannot be turned into rows."""

    def __init__(self, messages: Iterable[str] | str) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__("; ".join(self.messages))


class UnsupportedFileTypeError(ParseError, ValueError):
    """Raised when a file is neither CSV nor XLSX."""


class ParseTimeoutError(LqsPipelineError):
    """Raised when the parse phase exceeds its time bound."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Parsing did not finish within {timeout_seconds:g} seconds; try again with a smaller file"
        )


class UploadInProgressError(LqsPipelineError):
    """Raised when an upload of the same kind is already running for the agency."""


class StoreError(LqsPipelineError):
    """Raised by data store implementations when a read or write fails."""


__all__ = [
    "ConfigurationError",
    "LqsPipelineError",
    "ParseError",
    "ParseTimeoutError",
    "StoreError",
    "UnsupportedFileTypeError",
    "UploadInProgressError",
]
