"""
Error types raised by the harvester.

Per-key extraction failures are retried and end up as sentinel rows; the
other errors abort a run with exit code 1.
"""

import logging
from typing import Optional, Dict, Any


class HarvesterError(Exception):
    """Base exception; ``details`` is merged into the logged context."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ExtractionError(HarvesterError):
    """A single key could not be rendered or parsed on this attempt."""


class SessionError(HarvesterError):
    """The shared browser session could not be started, borrowed from, or is closed."""


class CheckpointError(HarvesterError):
    """Prior output could not be read back as a set of processed keys."""


class DatasetError(HarvesterError):
    """The input key file or the output CSV could not be read or written."""


class ConfigurationError(HarvesterError):
    """Config file, environment override or extractor settings are unusable."""


class ValidationError(HarvesterError):
    """Pipeline tunables or a record schema fall outside their allowed ranges."""


def handle_error(
    error: Exception,
    logger: logging.Logger,
    context: Optional[Dict[str, Any]] = None,
    reraise: bool = True
) -> None:
    """
    Log an error together with the stage it happened in.

    Args:
        error: The exception that occurred
        logger: Logger to report to
        context: Extra fields such as the run stage or output path
        reraise: Whether to raise the error again after logging
    """
    error_context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **(context or {})
    }

    if isinstance(error, HarvesterError):
        error_context.update(error.details)

    # Tracebacks only at debug level
    logger.error(f"Harvest error: {error_context}", exc_info=logger.isEnabledFor(logging.DEBUG))

    if reraise:
        raise error
