"""
Logging configuration for the gateway.
Configures the root logger once; modules log via logging.getLogger(__name__).
"""

import logging
import sys

_logging_configured = False


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure root logging (stderr) once per process."""
    global _logging_configured

    logger = logging.getLogger("schemagate")
    if _logging_configured:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root_logger.addHandler(stderr_handler)

    # Quiet libraries
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _logging_configured = True
    logger.info("Logging initialized at %s", level)
    return logger
