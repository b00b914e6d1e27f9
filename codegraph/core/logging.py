"""
codegraph.core.logging -- Log output setup for the codegraph process.

Two modes:

* plain text (default): ``logging.basicConfig`` style lines on stderr;
* structured: one JSON object per line, for log shippers.

Both always write to stderr.  stdout carries the MCP stdio transport
and must never see a log line.

Usage::

    from codegraph.core.logging import configure_logging

    configure_logging(structured=True, level="DEBUG")
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields emitted: ``ts``, ``level``, ``logger``, ``msg``, ``module``,
    ``func``, ``line``; plus ``exception`` when the record carries
    ``exc_info``.  Values passed through ``extra=`` that are not standard
    record attributes are copied in as well.
    """

    _STANDARD = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
        "message",
        "asctime",
    }

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S")
            + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }
        for key, value in vars(record).items():
            if key not in self._STANDARD and key not in entry:
                entry[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_logging(
    structured: bool = False,
    level: str = "INFO",
    logger_name: str = "codegraph",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install a single stderr handler on the *logger_name* logger.

    Replaces any handler installed by a previous call, so calling this
    twice never duplicates output.  Propagation to the root logger is
    turned off.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
