"""
Blog API Backend: Logging Configuration
=======================================

What:  Configures the root logger once at startup.
How:   logging.basicConfig to stdout (containers capture stdout) with ISO
       timestamps. StructuredFormatter appends any `extra=` fields passed
       at the call site as key=value pairs, so
           logger.info("Connected", extra={"uri": uri})
       renders as
           2025-01-15T12:00:00 [INFO] blog_api.database: Connected | uri=mongodb://...
"""

import logging
import sys

# Attributes every LogRecord has; anything else came in through `extra=`
_RESERVED = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "color_message"}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if not fields:
            return line
        rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return f"{line} | {rendered}"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure process logging. Safe to call more than once (force=True).

    Third-party loggers that are chatty at INFO (uvicorn access lines,
    pymongo topology events) are raised to WARNING.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        handlers=[handler],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
