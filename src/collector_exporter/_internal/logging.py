"""Internal logging utilities."""

import logging

# Create package logger
logger = logging.getLogger("collector_exporter")

# Default to WARNING to avoid noise
logger.setLevel(logging.WARNING)


def log_internal_error(operation: str, error: Exception) -> None:
    """Log an internal exporter error without raising to user code."""
    logger.warning(
        "collector_exporter internal error in %s: %s", operation, error, exc_info=True
    )
