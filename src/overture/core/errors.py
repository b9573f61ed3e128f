"""
Exception hierarchy for Overture.

All errors raised by the pipeline, the span registry and the features
inherit from OvertureError.
"""

from __future__ import annotations


class OvertureError(Exception):
    """Base exception for Overture errors."""


class ConfigurationError(OvertureError, ValueError):
    """Raised when a feature is installed with invalid configuration."""


class SpanNotFoundError(OvertureError, LookupError):
    """Raised when a span id was never registered."""

    def __init__(self, span_id: str):
        super().__init__(f"Span with id: {span_id} not found")
        self.span_id = span_id


class SpanTypeMismatchError(OvertureError, TypeError):
    """Raised when a registered span has a different type than requested."""

    def __init__(self, span_id: str, expected: type, actual: type):
        super().__init__(
            f"Span with id <{span_id}> has wrong type. "
            f"Expected: {expected.__name__}, actual: {actual.__name__}"
        )
        self.span_id = span_id
        self.expected = expected
        self.actual = actual


class SpanAlreadyStartedError(OvertureError):
    """Raised when starting a span that already holds a live OpenTelemetry span."""

    def __init__(self, span_id: str):
        super().__init__(f"Span with id: {span_id} is already started")
        self.span_id = span_id


class FeatureNotFoundError(OvertureError, LookupError):
    """Raised when a feature key has no installed value."""

    def __init__(self, key_name: str):
        super().__init__(f"Feature with key: {key_name} is not installed")
        self.key_name = key_name


class FeatureTypeMismatchError(OvertureError, TypeError):
    """Raised when a stored feature value does not match its key's type."""

    def __init__(self, key_name: str, expected: type, actual: type):
        super().__init__(
            f"Value stored under key <{key_name}> has wrong type. "
            f"Expected: {expected.__name__}, actual: {actual.__name__}"
        )
        self.key_name = key_name
        self.expected = expected
        self.actual = actual


class FeatureCloseError(OvertureError):
    """Raised after closing all message processors when one or more failed."""

    def __init__(self, errors: list[BaseException]):
        names = ", ".join(type(e).__name__ for e in errors)
        super().__init__(f"{len(errors)} message processor(s) failed to close: {names}")
        self.errors = errors


class SpanCleanupError(OvertureError):
    """Raised after a bulk cleanup ended every target span but some failed to finish."""

    def __init__(self, errors: dict[str, BaseException]):
        super().__init__(
            f"{len(errors)} span(s) failed to finish: {', '.join(errors)}"
        )
        self.errors = errors
