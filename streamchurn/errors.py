# streamchurn/errors.py
"""Exceptions raised by the segmentation and metrics engine."""


class ChurnAnalyticsError(Exception):
    """Base class for every error raised by streamchurn."""


class ConfigurationError(ChurnAnalyticsError):
    """Raised when a bucket rule, metric or analysis definition is malformed.

    Typical causes: a bucket rule without a default label, a range predicate
    whose lower bound exceeds its upper bound, an unknown metric kind.
    """


class InvalidFieldError(ChurnAnalyticsError):
    """Raised when a group field, metric or filter references an unknown column."""

    def __init__(self, field: str, available=None, context: str = ""):
        self.field = field
        self.available = sorted(available) if available is not None else []
        where = f" in {context}" if context else ""
        message = f"Unknown field '{field}'{where}"
        if self.available:
            message += f". Available: {self.available}"
        super().__init__(message)


class EmptyInputError(ChurnAnalyticsError):
    """Raised when a record set is empty and the caller asked for at least one row."""
