"""
Error Taxonomy for the Training Engine

Every failure raised by this package derives from NetworkError, so callers
can catch the whole family at once. The concrete classes also inherit from
the closest built-in exception, which keeps ``except ValueError`` style
handlers working.

Classes:
    NetworkError: Common base class
    ConfigurationError: Invalid structure, unknown strategy name, bad option
    ValidationError: Bad input/output vector or malformed training record
    ProgrammingError: Abstract method called without an override
"""

from typing import Optional


class NetworkError(Exception):
    """Base class for all errors raised by the engine."""


class ConfigurationError(NetworkError, ValueError):
    """Raised when a network or trainer is configured with invalid options."""


class ValidationError(NetworkError, ValueError):
    """
    Raised when data handed to the network does not satisfy its contract.

    Attributes:
        record_index: Index of the offending training record, when the
                      failure was detected while validating a dataset.
    """

    def __init__(self, message: str, record_index: Optional[int] = None):
        super().__init__(message)
        self.record_index = record_index


class ProgrammingError(NetworkError, NotImplementedError):
    """Raised when an abstract strategy method is invoked without an override."""
