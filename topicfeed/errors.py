"""Exception types raised by the feed pipeline."""


class TopicFeedError(Exception):
    """Base class for pipeline errors."""


class FetchError(TopicFeedError):
    """Every transport candidate (direct request and each proxy) failed."""

    def __init__(self, message: str, attempts: list[str] | None = None):
        super().__init__(message)
        self.attempts = attempts or []


class ParseError(TopicFeedError):
    """The fetched body is not a recognized feed document.

    The message is one of ``"unknown format"``, ``"invalid xml"`` or
    ``"invalid feed structure"``.
    """


class CompletionError(TopicFeedError):
    """A single completion API call failed."""


class ConfigurationError(TopicFeedError):
    """An AI operation was requested but the API is not configured."""
