"""Structured logging for feed hub events (publish, fan-out, sessions).

Call sites log an event name as the message and pass context through ``extra=``;
the formatter renders that context as trailing ``key=value`` pairs.
"""

import logging
import sys

# Attributes every LogRecord carries; anything else on a record came from extra=.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class EventFormatter(logging.Formatter):
    """``asctime | name | level | event key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if not context:
            return line
        pairs = " ".join(f"{k}={v!r}" if isinstance(v, str) else f"{k}={v}" for k, v in sorted(context.items()))
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Return a configured logger for observability."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            EventFormatter("%(asctime)s | %(name)s | %(levelname)s | %(message)s")
        )
        logger.addHandler(handler)
        logger.setLevel(level)
        logger.propagate = False
    return logger
