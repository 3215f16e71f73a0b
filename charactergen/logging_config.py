# charactergen/logging_config.py

"""
Configures structured JSON logging for the character generation service.

One JSON object per log line on stdout, produced by the `python-json-logger`
package, so container log drivers and cloud log pipelines can index the
fields added via `extra=` (provider, attempt, request_id, ...).

Verbosity comes from the `LOG_LEVEL` setting (DEBUG, INFO, WARNING, ...).
"""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def configure_logging(level: str = "INFO") -> None:
    """
    Configures the global Python logger.

    Replaces any existing handlers with a single JSON handler on stdout.

    Args:
        level (str): Log level (e.g., "DEBUG", "INFO", "ERROR").
    """
    handler = logging.StreamHandler(sys.stdout)

    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    handler.setFormatter(JsonFormatter(fmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
