"""Exception hierarchy shared by the validator, the store and the scheduler."""
from __future__ import annotations


class EventsServiceError(Exception):
    """Base class for all errors raised by the events service."""


class MalformedRequestError(EventsServiceError):
    """Raised when a request body cannot be decoded."""


class ValidationError(EventsServiceError):
    """Raised when well-formed input is semantically invalid."""


class EmptyTimeError(ValidationError):
    """Raised when a time parameter is missing or blank."""


class UnrecognizedTimeFormatError(ValidationError):
    """Raised when a time parameter matches none of the accepted formats."""


class InvalidRangeError(ValidationError):
    """Raised for a non-positive user filter or an inverted time range."""


class StorageError(EventsServiceError):
    """Raised when an underlying store operation fails."""


class ConfigError(EventsServiceError):
    """Raised when configuration is invalid at start-up."""
