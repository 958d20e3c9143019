"""Failure types raised by the extraction pipeline.

Each carries the HTTP status the web layer answers with and a message that
tells the user whether to fix setup, wait, or try another document.
"""

from __future__ import annotations

from typing import Optional, Sequence


class ExtractionError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ExtractionError):
    status_code = 503


class UnsupportedFileError(ExtractionError):
    status_code = 415


class RateLimitError(ExtractionError):
    status_code = 429

    def __init__(self, message: str, retry_after: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(ExtractionError):
    status_code = 502

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ModelNotFoundError(UpstreamError):
    def __init__(self, message: str, models: Sequence[str] = ()):
        super().__init__(message, code=404)
        self.models = list(models)


class MalformedResponseError(ExtractionError):
    status_code = 502


class MissingInstructionsError(ExtractionError):
    status_code = 422

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts
