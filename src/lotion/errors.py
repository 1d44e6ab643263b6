"""Exception hierarchy for lotion."""

from __future__ import annotations


class LotionError(Exception):
    """Base class for every error raised by lotion itself."""


class ConfigError(LotionError):
    """Raised when the configuration is missing or invalid."""


class NotionAPIError(LotionError):
    """Raised when the Notion API rejects a request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class RateLimitError(NotionAPIError):
    """Raised when Notion keeps rate limiting after every retry."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"Notion API rate limit exceeded after {attempts} attempts.",
            status_code=429,
            code="rate_limited",
        )


class SyncError(LotionError):
    """Raised when a sync target cannot be processed."""


class FileSystemError(LotionError):
    """Raised when a local file cannot be written."""
