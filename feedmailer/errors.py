"""Exception hierarchy shared by the check pipeline, config and delivery layers."""

from __future__ import annotations


class FeedmailerError(Exception):
    """Base class for every error raised by feedmailer."""


class ConfigError(FeedmailerError):
    """Configuration file is missing, malformed or declares a source twice."""


class FetchError(FeedmailerError):
    """Transport failure or unexpected HTTP status while fetching a source."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @classmethod
    def http(cls, status_code: int) -> "FetchError":
        return cls(f"Http error: {status_code}", status_code=status_code)

    def __str__(self) -> str:
        return self.message


class ParseError(FeedmailerError):
    """Fetched content could not be turned into a feed."""

    def __init__(self, message: str, line: int = 0, column: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column

    @property
    def position(self) -> tuple[int, int]:
        return self.line, self.column

    def __str__(self) -> str:
        return f"{self.line}:{self.column}: {self.message}"


class DeliveryError(FeedmailerError):
    """A notification could not be handed to the SMTP server."""


__all__ = [
    "ConfigError",
    "DeliveryError",
    "FeedmailerError",
    "FetchError",
    "ParseError",
]
