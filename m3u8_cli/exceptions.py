"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class M3u8CliError(Exception):
    """Base exception for all application-specific errors."""


class InvalidArgumentError(M3u8CliError):
    """Raised when user input is missing or malformed."""


class InvalidStateError(M3u8CliError):
    """Raised when an operation is not allowed in the current run state."""


class EmptyQueueError(M3u8CliError):
    """Raised when an operation needs a pending job and the queue has none."""


class IOFailureError(M3u8CliError):
    """Raised when a filesystem operation, such as creating a directory, fails."""


class ConversionError(M3u8CliError):
    """Raised by a conversion engine when a single job fails."""


class ConversionCancelledError(ConversionError):
    """
    Raised by a conversion engine once it has observed the cancellation signal
    and stopped working on the job.
    """


class ConfigurationError(M3u8CliError):
    """Raised for issues related to configuration loading or validation."""


class PlaylistError(M3u8CliError):
    """Raised when a playlist cannot be fetched or is not a valid M3U8 document."""
