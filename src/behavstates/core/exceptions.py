"""Custom exceptions for behavstates."""

from behavstates.core import config

logger = config.get_logger()


class LoggedException(Exception):
    """Base class that automatically logs messages."""

    def __init__(self, message: str) -> None:
        """Initialize a new instance of the LoggedException class.

        Args:
            message: The message to display.
        """
        logger.exception(message)
        super().__init__(message)


class ConfigurationError(LoggedException):
    """Inputs or settings were rejected before classification started."""

    pass


class AmbiguousBipartitionError(LoggedException):
    """The theta/delta split could not tell REM apart from SWS."""

    pass


class InvalidFileTypeError(LoggedException):
    """behavstates did not expect this file extension."""

    pass
